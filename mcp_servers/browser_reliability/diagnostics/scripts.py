"""Page-side scripts for structure and performance analysis.

Every script is a JS function source; engines call it with one JSON argument.
"""

from __future__ import annotations

MODAL_STATE_SCRIPT = r"""
() => {
  const modals = document.querySelectorAll('[role="dialog"], .modal, .dialog, .popup');
  const overlays = document.querySelectorAll('.overlay, .modal-backdrop, .dialog-backdrop');
  const hasDialog = modals.length > 0 || overlays.length > 0;
  const hasFileChooser = Array.from(document.querySelectorAll('input[type="file"]')).some((input) => {
    const style = window.getComputedStyle(input);
    return style.display !== 'none' && style.visibility !== 'hidden';
  });
  return { hasDialog, hasFileChooser };
}
"""

ELEMENT_STATS_SCRIPT = r"""
() => {
  let totalVisible = 0;
  let totalInteractable = 0;
  let missingAria = 0;
  const interactiveTags = ['button', 'input', 'select', 'textarea', 'a'];
  for (const el of Array.from(document.querySelectorAll('*'))) {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') continue;
    totalVisible++;
    const tag = el.tagName.toLowerCase();
    const interactable = interactiveTags.includes(tag) || el.hasAttribute('onclick') || el.hasAttribute('role');
    if (!interactable) continue;
    totalInteractable++;
    const labelled = el.hasAttribute('aria-label') || el.hasAttribute('aria-labelledby') || (el.textContent || '').trim();
    if (!labelled) missingAria++;
  }
  return { totalVisible, totalInteractable, missingAria };
}
"""

ELEMENT_COUNT_SCRIPT = "() => document.querySelectorAll('*').length"

COMPLEXITY_SCRIPT = r"""
() => ({
  elementCount: document.querySelectorAll('*').length,
  iframeCount: document.querySelectorAll('iframe').length,
  formElements: document.querySelectorAll('input, button, select, textarea').length,
})
"""

PERFORMANCE_METRICS_SCRIPT = r"""
(opts) => {
  const subtreeThreshold = (opts && opts.largeSubtreeThreshold) || 500;
  const highZ = (opts && opts.highZIndexThreshold) || 1000;
  const extremeZ = (opts && opts.excessiveZIndexThreshold) || 9999;

  const all = [];
  const walker = document.createTreeWalker(document.documentElement, NodeFilter.SHOW_ELEMENT, null);
  let node = walker.currentNode;
  while (node) { all.push(node); node = walker.nextNode(); }

  const depthOf = (root) => {
    let max = 0;
    const stack = [[root, 0]];
    while (stack.length) {
      const [el, d] = stack.pop();
      if (d > max) max = d;
      for (const child of Array.from(el.children)) stack.push([child, d + 1]);
    }
    return max;
  };
  const cls = (el) => (typeof el.className === 'string' ? el.className : '');
  const selectorOf = (el) => {
    const tag = el.tagName.toLowerCase();
    const id = el.id ? '#' + el.id : '';
    const first = cls(el).trim().split(/\s+/)[0];
    return tag + id + (first ? '.' + first : '');
  };
  const subtreeLabel = (el) => {
    const tag = el.tagName.toLowerCase();
    if (tag === 'ul' || tag === 'ol') return 'Large list structure';
    if (tag === 'table') return 'Large table structure';
    if (tag === 'div' && (cls(el).includes('container') || cls(el).includes('wrapper'))) return 'Large container element';
    return 'Large subtree';
  };

  const largeSubtrees = [];
  if (document.body) {
    const roots = [document.body].concat(Array.from(document.body.querySelectorAll('div, section, main, article, aside')));
    for (const root of roots) {
      const count = root.getElementsByTagName('*').length;
      if (count >= subtreeThreshold) {
        largeSubtrees.push({ selector: selectorOf(root), elementCount: count, description: subtreeLabel(root) });
      }
    }
  }

  let clickableElements = 0, formElements = 0, disabledElements = 0;
  for (const el of all) {
    const tag = el.tagName.toLowerCase();
    const type = (el.type || '').toString().toLowerCase();
    const role = el.getAttribute('role');
    if (tag === 'button' || (tag === 'input' && ['button', 'submit', 'reset'].includes(type)) ||
        (tag === 'a' && el.hasAttribute('href')) || el.hasAttribute('onclick') ||
        role === 'button' || role === 'link' ||
        (el.hasAttribute('tabindex') && el.getAttribute('tabindex') !== '-1')) clickableElements++;
    if (['input', 'select', 'textarea'].includes(tag) || (tag === 'button' && type === 'submit')) formElements++;
    if (el.hasAttribute('disabled') || el.getAttribute('aria-disabled') === 'true') disabledElements++;
  }

  const scriptTags = document.querySelectorAll('script').length;
  const inlineScripts = document.querySelectorAll('script:not([src])').length;

  const fixedElements = [], highZIndexElements = [];
  let overflowHiddenElements = 0;
  all.forEach((el, index) => {
    const style = window.getComputedStyle(el);
    const zIndex = parseInt(style.zIndex || '0', 10) || 0;
    const tag = el.tagName.toLowerCase();
    const c = cls(el).toLowerCase();
    const sel = el.id ? '#' + el.id : tag + ':nth-child(' + (index + 1) + ')';
    if (style.position === 'fixed') {
      let purpose = 'Unknown fixed element';
      if (tag === 'nav' || el.getAttribute('role') === 'navigation' || c.includes('nav')) purpose = 'Fixed navigation element';
      else if (tag === 'header' || c.includes('header')) purpose = 'Fixed header element';
      else if (c.includes('modal') || c.includes('dialog')) purpose = 'Modal or dialog overlay';
      else if (c.includes('toolbar') || c.includes('controls')) purpose = 'Fixed toolbar or controls';
      fixedElements.push({ selector: sel, purpose, zIndex });
    }
    if (zIndex >= highZ) {
      let description = 'High z-index element';
      if (zIndex >= extremeZ) description = 'Extremely high z-index (potential issue)';
      else if (c.includes('modal')) description = 'Modal with high z-index';
      else if (c.includes('tooltip')) description = 'Tooltip with high z-index';
      highZIndexElements.push({ selector: sel, zIndex, description });
    }
    if (style.overflow === 'hidden') overflowHiddenElements++;
  });

  return {
    dom: { totalElements: all.length, maxDepth: depthOf(document.documentElement), largeSubtrees },
    interaction: { clickableElements, formElements, disabledElements, iframes: document.querySelectorAll('iframe').length },
    resource: {
      imageCount: document.querySelectorAll('img').length,
      scriptTags,
      inlineScripts,
      externalScripts: scriptTags - inlineScripts,
      stylesheetCount: document.querySelectorAll('link[rel="stylesheet"], style').length,
    },
    layout: {
      viewportWidth: window.innerWidth,
      viewportHeight: window.innerHeight,
      scrollHeight: document.documentElement.scrollHeight,
      fixedElements,
      highZIndexElements,
      overflowHiddenElements,
    },
  };
}
"""

CANDIDATE_SCAN_SCRIPT = r"""
(criteria) => {
  const limit = (criteria && criteria.limit) || 100;
  const attrNames = Object.keys((criteria && criteria.attributes) || {});
  const interactive = ['a', 'button', 'input', 'select', 'textarea', 'label', 'summary', 'option'];
  const esc = (s) => (window.CSS && CSS.escape ? CSS.escape(s) : s);
  const cls = (el) => (typeof el.className === 'string' ? el.className.trim() : '');
  const unique = (sel) => { try { return document.querySelectorAll(sel).length === 1; } catch (e) { return false; } };
  const selectorOf = (el) => {
    const tag = el.tagName.toLowerCase();
    if (el.id && unique(tag + '#' + esc(el.id))) return tag + '#' + esc(el.id);
    for (const name of ['data-testid', 'name', 'type', 'aria-label', 'placeholder', 'role']) {
      const v = el.getAttribute(name);
      if (v && unique(tag + '[' + name + '="' + v + '"]')) return tag + '[' + name + '="' + v + '"]';
    }
    const classes = cls(el) ? '.' + cls(el).split(/\s+/).map(esc).join('.') : '';
    if (classes && unique(tag + classes)) return tag + classes;
    const parent = el.parentElement;
    if (!parent) return tag;
    const index = Array.from(parent.children).indexOf(el) + 1;
    const parentSel = parent.tagName.toLowerCase() + (parent.id ? '#' + esc(parent.id) : '');
    return parentSel + ' > ' + tag + ':nth-child(' + index + ')';
  };
  const out = [];
  for (const el of Array.from(document.querySelectorAll('body *'))) {
    if (out.length >= limit) break;
    const tag = el.tagName.toLowerCase();
    if (tag === 'script' || tag === 'style') continue;
    const leaf = el.children.length === 0 || interactive.includes(tag);
    const role = el.getAttribute('role') || '';
    const attributes = {};
    for (const name of attrNames) {
      const v = el.getAttribute(name);
      if (v !== null) attributes[name] = v;
    }
    if (!leaf && !role && !Object.keys(attributes).length) continue;
    out.push({
      selector: selectorOf(el),
      tagName: tag,
      role,
      text: (el.textContent || '').trim().slice(0, 200),
      value: el.getAttribute('value') || '',
      placeholder: el.getAttribute('placeholder') || '',
      ariaLabel: el.getAttribute('aria-label') || '',
      attributes,
    });
  }
  return out;
}
"""

__all__ = [
    "CANDIDATE_SCAN_SCRIPT",
    "COMPLEXITY_SCRIPT",
    "ELEMENT_COUNT_SCRIPT",
    "ELEMENT_STATS_SCRIPT",
    "MODAL_STATE_SCRIPT",
    "PERFORMANCE_METRICS_SCRIPT",
]
