"""
DOM tool handlers: navigation, input and page reads over the automation engine.

Failures are raised; the registry or batch executor turns them into results.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any

from ...diagnostics.discovery import SearchCriteria
from ..schema import ArgField, ArgSchema
from ..types import ToolSpec

if TYPE_CHECKING:
    from ..response import Response
    from ..types import ToolContext

POLL_INTERVAL_S = 0.1
DEFAULT_WAIT_MS = 5000
MAX_WAIT_MS = 120000

NAVIGATE_SCRIPT = r"""
(args) => {
  const before = location.href;
  window.location.assign(args.url);
  return before;
}
"""

READY_STATE_SCRIPT = "() => ({ url: location.href, readyState: document.readyState })"

CLICK_SCRIPT = r"""
(args) => {
  const el = document.querySelector(args.selector);
  if (!el) return { found: false };
  const rect = el.getBoundingClientRect();
  const style = window.getComputedStyle(el);
  const visible = rect.width > 0 && rect.height > 0 && style.visibility !== 'hidden' && style.display !== 'none';
  if (!visible) return { found: true, visible: false };
  if (el.disabled) return { found: true, visible: true, enabled: false };
  el.scrollIntoView({ block: 'center', inline: 'center' });
  el.click();
  return { found: true, visible: true, enabled: true, tagName: el.tagName.toLowerCase() };
}
"""

TYPE_SCRIPT = r"""
(args) => {
  const el = document.querySelector(args.selector);
  if (!el) return { found: false };
  if (el.disabled || el.readOnly) return { found: true, enabled: false };
  el.focus();
  const proto = el instanceof HTMLTextAreaElement ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
  const setter = Object.getOwnPropertyDescriptor(proto, 'value');
  const next = args.clear ? args.text : (el.value || '') + args.text;
  if (setter && setter.set && (el instanceof HTMLInputElement || el instanceof HTMLTextAreaElement)) {
    setter.set.call(el, next);
  } else if (el.isContentEditable) {
    el.textContent = next;
  } else {
    el.value = next;
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  if (args.submit) {
    const form = el.form || el.closest('form');
    if (form && typeof form.requestSubmit === 'function') form.requestSubmit();
    else if (form) form.submit();
  }
  return { found: true, enabled: true, length: next.length };
}
"""

WAIT_CONDITION_SCRIPT = r"""
(args) => {
  if (args.selector) {
    const el = document.querySelector(args.selector);
    if (!el) return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
  }
  if (args.text) return (document.body && document.body.innerText || '').includes(args.text);
  if (args.textGone) return !(document.body && document.body.innerText || '').includes(args.textGone);
  return true;
}
"""


async def _not_found(context: ToolContext, selector: str, args: dict[str, Any]) -> BaseException:
    error = LookupError(f"Element not found: {selector}")
    if context.orchestrator is None:
        return error
    criteria = SearchCriteria(text=args.get("element") or None, role=args.get("role") or None)
    return await context.orchestrator.enrich_not_found(error, selector, criteria)


async def handle_browser_navigate(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    url = args["url"]
    previous = await context.engine.evaluate(NAVIGATE_SCRIPT, {"url": url})
    response.add_code(f"await page.goto({json.dumps(url)});")
    if args.get("wait_load", True):
        deadline = time.monotonic() + args.get("timeout_ms", DEFAULT_WAIT_MS) / 1000.0
        while True:
            with_state = await context.engine.evaluate(READY_STATE_SCRIPT)
            state = with_state if isinstance(with_state, dict) else {}
            if state.get("readyState") == "complete" and (state.get("url") != previous or url == previous):
                break
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out waiting for navigation to {url}")
            await asyncio.sleep(POLL_INTERVAL_S)
    response.add_result(f"Navigated to {url}", data={"url": url})


async def handle_browser_click(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    selector = args["selector"]
    out = await context.engine.evaluate(CLICK_SCRIPT, {"selector": selector})
    out = out if isinstance(out, dict) else {}
    if not out.get("found"):
        raise await _not_found(context, selector, args)
    if not out.get("visible"):
        raise RuntimeError(f"Element not visible: {selector}")
    if not out.get("enabled"):
        raise RuntimeError(f"Element is disabled: {selector}")
    response.add_code(f"await page.locator({json.dumps(selector)}).click();")
    response.add_result(f"Clicked {selector}", data=out)


async def handle_browser_type(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    selector = args["selector"]
    payload = {
        "selector": selector,
        "text": args["text"],
        "clear": args.get("clear", True),
        "submit": args.get("submit", False),
    }
    out = await context.engine.evaluate(TYPE_SCRIPT, payload)
    out = out if isinstance(out, dict) else {}
    if not out.get("found"):
        raise await _not_found(context, selector, args)
    if not out.get("enabled"):
        raise RuntimeError(f"Element is not enabled for input: {selector}")
    response.add_code(f"await page.locator({json.dumps(selector)}).fill({json.dumps(args['text'])});")
    if payload["submit"]:
        response.add_code(f"await page.locator({json.dumps(selector)}).press('Enter');")
    response.add_result(f"Typed {len(args['text'])} characters into {selector}", data=out)


async def handle_browser_evaluate(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    value = await context.engine.evaluate(args["function"], args.get("arg"))
    response.add_code(f"await page.evaluate({json.dumps(args['function'])});")
    response.add_result(json.dumps(value, ensure_ascii=False, default=str), data={"value": value})


async def handle_browser_snapshot(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    response.set_include_snapshot()
    response.add_result("Page snapshot captured")


async def handle_browser_wait_for(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    if args.get("time") is not None:
        await asyncio.sleep(float(args["time"]))
        response.add_result(f"Waited {args['time']}s")
        return

    wanted = {k: args.get(k) for k in ("selector", "text", "text_gone")}
    if not any(wanted.values()):
        raise ValueError("browser_wait_for needs one of: time, selector, text, text_gone")
    target = wanted["selector"] or wanted["text"] or wanted["text_gone"]
    deadline = time.monotonic() + args.get("timeout_ms", DEFAULT_WAIT_MS) / 1000.0
    arg = {"selector": wanted["selector"], "text": wanted["text"], "textGone": wanted["text_gone"]}
    while not await context.engine.evaluate(WAIT_CONDITION_SCRIPT, arg):
        if time.monotonic() >= deadline:
            raise TimeoutError(f"Timed out waiting for {target}")
        await asyncio.sleep(POLL_INTERVAL_S)
    response.add_result(f"Condition met: {target}")


_TIMEOUT = ArgField("timeout_ms", "int", lo=0, hi=MAX_WAIT_MS, description="Wait budget in milliseconds")

DOM_HANDLERS: dict[str, ToolSpec] = {
    "browser_navigate": ToolSpec(
        name="browser_navigate",
        handler=handle_browser_navigate,
        input_schema=ArgSchema(
            fields=(
                ArgField("url", "str", required=True),
                ArgField("wait_load", "bool", default=True),
                _TIMEOUT,
            )
        ),
        description="Navigate to a URL",
    ),
    "browser_click": ToolSpec(
        name="browser_click",
        handler=handle_browser_click,
        input_schema=ArgSchema(
            fields=(
                ArgField("selector", "str", required=True),
                ArgField("element", "str", description="Human-readable element description"),
                ArgField("role", "str"),
            )
        ),
        description="Click an element by CSS selector",
    ),
    "browser_type": ToolSpec(
        name="browser_type",
        handler=handle_browser_type,
        input_schema=ArgSchema(
            fields=(
                ArgField("selector", "str", required=True),
                ArgField("text", "str", required=True),
                ArgField("element", "str"),
                ArgField("role", "str"),
                ArgField("clear", "bool", default=True),
                ArgField("submit", "bool", default=False),
            )
        ),
        description="Type text into an input",
    ),
    "browser_evaluate": ToolSpec(
        name="browser_evaluate",
        handler=handle_browser_evaluate,
        input_schema=ArgSchema(fields=(ArgField("function", "str", required=True), ArgField("arg", "any"))),
        description="Evaluate a JS function in the page",
    ),
    "browser_snapshot": ToolSpec(
        name="browser_snapshot",
        handler=handle_browser_snapshot,
        input_schema=ArgSchema(),
        description="Capture a text snapshot of the page",
    ),
    "browser_wait_for": ToolSpec(
        name="browser_wait_for",
        handler=handle_browser_wait_for,
        input_schema=ArgSchema(
            fields=(
                ArgField("time", "float", lo=0, hi=60),
                ArgField("selector", "str"),
                ArgField("text", "str"),
                ArgField("text_gone", "str"),
                _TIMEOUT,
            )
        ),
        description="Wait for time, a selector, or text to appear/disappear",
    ),
}

__all__ = ["DOM_HANDLERS"]
