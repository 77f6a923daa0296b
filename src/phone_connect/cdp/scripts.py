"""
主機端腳本

各 Action 在主機 Execution Context 內執行的 JavaScript。
這些腳本依主機應用程式的 DOM 結構而定，可整組替換；
核心只要求腳本回傳可序列化的物件，失敗時帶 error 欄位。
"""

import json
from typing import Any

# 聊天區塊的根節點與捲動容器
ROOT_SELECTOR = "#cascade"
SCROLL_CONTAINER_SELECTOR = ".overflow-y-auto, [data-scroll-area]"


def _call(body: str, args: dict[str, Any] | None = None, is_async: bool = True) -> str:
    """將腳本包成立即執行函式，參數以 JSON 注入"""
    prefix = "async " if is_async else ""
    payload = json.dumps(args or {}, ensure_ascii=False)
    return f"({prefix}(args) => {{\n{body}\n}})({payload})"


_COMMON = {"root": ROOT_SELECTOR, "scrollSelector": SCROLL_CONTAINER_SELECTOR}

# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot 擷取
# ═══════════════════════════════════════════════════════════════════════════════
_CAPTURE_BODY = r"""
try {
    const root = document.querySelector(args.root);
    if (!root) return { error: 'cascade not found' };

    const rootStyles = window.getComputedStyle(root);
    const container = root.querySelector(args.scrollSelector) || root;
    const overflow = container.scrollHeight - container.clientHeight;
    const scrollInfo = {
        scrollTop: container.scrollTop,
        scrollHeight: container.scrollHeight,
        clientHeight: container.clientHeight,
        scrollPercent: overflow > 0 ? container.scrollTop / overflow : 0
    };

    const clone = root.cloneNode(true);
    const input = clone.querySelector('[contenteditable="true"]')?.closest('div[id^="cascade"] > div');
    if (input) input.remove();

    const html = clone.outerHTML;
    let css = '';
    for (const sheet of document.styleSheets) {
        try {
            for (const rule of (sheet.cssRules || sheet.rules)) css += rule.cssText + '\n';
        } catch (e) { }
    }

    return {
        html: html,
        css: css,
        backgroundColor: rootStyles.backgroundColor,
        color: rootStyles.color,
        fontFamily: rootStyles.fontFamily,
        scrollInfo: scrollInfo,
        stats: { nodes: clone.getElementsByTagName('*').length, htmlSize: html.length, cssSize: css.length }
    };
} catch (err) {
    return { error: err.toString() };
}
"""


def capture_script() -> str:
    return _call(_CAPTURE_BODY, _COMMON, is_async=False)


# ═══════════════════════════════════════════════════════════════════════════════
# 訊息輸入
# ═══════════════════════════════════════════════════════════════════════════════
_INJECT_BODY = r"""
const cancelBtn = document.querySelector('[data-tooltip-id="input-send-button-cancel-tooltip"]');
if (cancelBtn && cancelBtn.offsetParent !== null) return { ok: false, reason: 'busy' };

const editors = [...document.querySelectorAll(args.root + ' [data-lexical-editor="true"][contenteditable="true"][role="textbox"]')]
    .filter(el => el.offsetParent !== null);
const editor = editors.at(-1);
if (!editor) return { ok: false, error: 'editor_not_found' };

editor.focus();
document.execCommand?.('selectAll', false, null);
document.execCommand?.('delete', false, null);

let inserted = false;
try { inserted = !!document.execCommand?.('insertText', false, args.text); } catch (e) { }
if (!inserted) {
    editor.textContent = args.text;
    editor.dispatchEvent(new InputEvent('beforeinput', { bubbles: true, inputType: 'insertText', data: args.text }));
    editor.dispatchEvent(new InputEvent('input', { bubbles: true, inputType: 'insertText', data: args.text }));
}

await new Promise(r => requestAnimationFrame(() => requestAnimationFrame(r)));

const submit = document.querySelector('svg.lucide-arrow-right')?.closest('button');
let method = 'enter_keypress';
if (submit && !submit.disabled) {
    submit.click();
    method = 'click_submit';
} else {
    editor.dispatchEvent(new KeyboardEvent('keydown', { bubbles: true, key: 'Enter', code: 'Enter' }));
    editor.dispatchEvent(new KeyboardEvent('keyup', { bubbles: true, key: 'Enter', code: 'Enter' }));
}

return {
    ok: true,
    method: method,
    debug: {
        editorsFound: editors.length,
        submitButtonFound: !!submit,
        submitButtonDisabled: submit ? submit.disabled : null,
        inserted: inserted
    }
};
"""


def inject_message_script(text: str) -> str:
    return _call(_INJECT_BODY, {**_COMMON, "text": text})


# ═══════════════════════════════════════════════════════════════════════════════
# 模式 / 模型切換
# ═══════════════════════════════════════════════════════════════════════════════
_SET_MODE_BODY = r"""
try {
    const leaves = Array.from(document.querySelectorAll('*')).filter(el => {
        if (el.children.length > 0) return false;
        const txt = el.textContent?.trim();
        return args.modes.includes(txt);
    });

    let modeBtn = null;
    for (const el of leaves) {
        let current = el;
        for (let i = 0; i < 4 && current; i++) {
            if (window.getComputedStyle(current).cursor === 'pointer' || current.tagName === 'BUTTON') {
                modeBtn = current;
                break;
            }
            current = current.parentElement;
        }
        if (modeBtn) break;
    }

    if (!modeBtn) return { error: 'Mode indicator/button not found' };
    if (modeBtn.innerText.includes(args.mode)) return { success: true, alreadySet: true };

    modeBtn.click();
    await new Promise(r => setTimeout(r, 600));

    let dialog = Array.from(document.querySelectorAll('[role="dialog"]'))
        .find(d => d.offsetHeight > 0 && d.innerText.includes(args.mode));
    if (!dialog) {
        dialog = Array.from(document.querySelectorAll('div')).find(d => {
            const style = window.getComputedStyle(d);
            return d.offsetHeight > 0
                && (style.position === 'absolute' || style.position === 'fixed')
                && d.innerText.includes(args.mode)
                && !d.innerText.includes('Files With Changes');
        });
    }
    if (!dialog) return { error: 'Dropdown not opened or options not visible' };

    const option = Array.from(dialog.querySelectorAll('*'))
        .find(el => el.children.length === 0 && el.textContent?.trim() === args.mode);
    if (!option) return { error: 'Mode option not found' };

    option.click();
    await new Promise(r => setTimeout(r, 200));
    return { success: true };
} catch (err) {
    return { error: err.toString() };
}
"""

MODES = ("Fast", "Planning")


def set_mode_script(mode: str) -> str:
    return _call(_SET_MODE_BODY, {"mode": mode, "modes": list(MODES)})


_SET_MODEL_BODY = r"""
try {
    const keywords = ['Gemini', 'Claude', 'GPT', 'Model'];
    const leaves = Array.from(document.querySelectorAll('*')).filter(el => {
        if (el.children.length > 0) return false;
        const txt = el.textContent;
        return txt && keywords.some(k => txt.includes(k));
    });

    let modelBtn = null;
    for (const el of leaves) {
        let current = el;
        for (let i = 0; i < 5 && current; i++) {
            const clickable = current.tagName === 'BUTTON' || window.getComputedStyle(current).cursor === 'pointer';
            if (clickable && (current.querySelector('svg.lucide-chevron-up') || current.innerText.includes('Model'))) {
                modelBtn = current;
                break;
            }
            current = current.parentElement;
        }
        if (modelBtn) break;
    }

    if (!modelBtn) return { error: 'Model button not found' };
    modelBtn.click();
    await new Promise(r => setTimeout(r, 600));

    const dialog = Array.from(document.querySelectorAll('[role="dialog"], div')).find(d => {
        const style = window.getComputedStyle(d);
        return d.offsetHeight > 0
            && (style.position === 'absolute' || style.position === 'fixed')
            && d.innerText.includes(args.model)
            && !d.innerText.includes('Files With Changes');
    });
    if (!dialog) return { error: 'Model list not opened' };

    const items = Array.from(dialog.querySelectorAll('*')).filter(el => el.children.length === 0);
    const option = items.find(el => el.textContent?.trim() === args.model)
        || items.find(el => el.textContent?.includes(args.model));
    if (!option) return { error: 'Model not found' };

    option.click();
    await new Promise(r => setTimeout(r, 200));
    return { success: true };
} catch (err) {
    return { error: err.toString() };
}
"""


def set_model_script(model: str) -> str:
    return _call(_SET_MODEL_BODY, {"model": model})


# ═══════════════════════════════════════════════════════════════════════════════
# 停止產生
# ═══════════════════════════════════════════════════════════════════════════════
_STOP_BODY = r"""
const cancel = document.querySelector('[data-tooltip-id="input-send-button-cancel-tooltip"]');
if (cancel && cancel.offsetParent !== null) {
    cancel.click();
    return { success: true };
}

const stopBtn = document.querySelector('button svg.lucide-square')?.closest('button');
if (stopBtn && stopBtn.offsetParent !== null) {
    stopBtn.click();
    return { success: true, method: 'fallback_square' };
}

return { error: 'No active generation found to stop' };
"""


def stop_generation_script() -> str:
    return _call(_STOP_BODY)


# ═══════════════════════════════════════════════════════════════════════════════
# 點擊 / 捲動
# ═══════════════════════════════════════════════════════════════════════════════
_CLICK_BODY = r"""
try {
    let elements = Array.from(document.querySelectorAll(args.selector));
    if (args.textContent) {
        elements = elements.filter(el => el.textContent?.includes(args.textContent));
    }
    const target = elements[args.index];
    if (!target) return { error: 'Element not found', matched: elements.length };
    target.click();
    return { success: true, matched: elements.length };
} catch (e) {
    return { error: e.toString() };
}
"""


def click_script(selector: str, index: int = 0, text_content: str = "") -> str:
    return _call(_CLICK_BODY, {"selector": selector, "index": index, "textContent": text_content})


_SCROLL_BODY = r"""
try {
    const root = document.querySelector(args.root);
    if (!root) return { error: 'Cascade not found' };

    const target = root.querySelector(args.scrollSelector) || root;
    const oldScroll = target.scrollTop;
    const newScroll = args.scrollPercent !== null
        ? (target.scrollHeight - target.clientHeight) * args.scrollPercent
        : (args.scrollTop || 0);
    target.scrollTop = newScroll;

    return {
        success: true,
        debug: {
            targetTag: target.tagName,
            scrollHeight: target.scrollHeight,
            clientHeight: target.clientHeight,
            oldScroll: oldScroll,
            newScroll: newScroll,
            actualScroll: target.scrollTop,
            percent: args.scrollPercent
        }
    };
} catch (e) {
    return { error: e.toString() };
}
"""


def scroll_script(scroll_top: float | None = None, scroll_percent: float | None = None) -> str:
    return _call(_SCROLL_BODY, {**_COMMON, "scrollTop": scroll_top, "scrollPercent": scroll_percent})


# ═══════════════════════════════════════════════════════════════════════════════
# 狀態查詢
# ═══════════════════════════════════════════════════════════════════════════════
_APP_STATE_BODY = r"""
try {
    const state = { mode: 'Unknown', model: 'Unknown' };
    const allEls = Array.from(document.querySelectorAll('*'));
    const leaves = allEls.filter(el => el.children.length === 0 && el.innerText);

    for (const el of leaves) {
        const text = el.innerText.trim();
        if (!args.modes.includes(text)) continue;
        let current = el;
        for (let i = 0; i < 5 && current; i++) {
            if (window.getComputedStyle(current).cursor === 'pointer' || current.tagName === 'BUTTON') {
                state.mode = text;
                break;
            }
            current = current.parentElement;
        }
        if (state.mode !== 'Unknown') break;
    }

    if (state.mode === 'Unknown') {
        for (const mode of [...args.modes].reverse()) {
            if (leaves.some(el => el.innerText.trim() === mode)) { state.mode = mode; break; }
        }
    }

    const modelEl = leaves.find(el => args.models.some(k => el.innerText.includes(k))
        && el.closest('button')?.querySelector('svg.lucide-chevron-up'));
    if (modelEl) state.model = modelEl.innerText.trim();

    return state;
} catch (e) {
    return { error: e.toString() };
}
"""


def app_state_script() -> str:
    return _call(_APP_STATE_BODY, {"modes": list(MODES), "models": ["Gemini", "Claude", "GPT"]})


# ═══════════════════════════════════════════════════════════════════════════════
# UI 結構檢視（除錯用）
# ═══════════════════════════════════════════════════════════════════════════════
_INSPECT_BODY = r"""
function serialize(el) {
    return {
        tag: el.tagName,
        id: el.id,
        className: typeof el.className === 'string' ? el.className : '',
        children: Array.from(el.children).map(serialize),
        text: el.children.length === 0 ? el.textContent?.trim() : undefined,
        rect: el.getBoundingClientRect().toJSON()
    };
}

const root = document.querySelector(args.root);
if (!root) return { error: 'cascade not found' };
const input = root.querySelector('[contenteditable="true"]')?.closest('div[id^="cascade"] > div') || root;
return serialize(input);
"""


def inspect_ui_script() -> str:
    return _call(_INSPECT_BODY, _COMMON, is_async=False)
