"""
In-page helper installed into every frame of an attached surface.

The script is self-contained and safe to evaluate any number of times: a
frame that already carries the current version is left untouched, so
re-injection never registers anything twice.
"""
PAYLOAD_GLOBAL = '__autoAccept'

VERSION_PROBE = f"() => (window.{PAYLOAD_GLOBAL} && window.{PAYLOAD_GLOBAL}.version) || null"

PAYLOAD_SCRIPT = f"""
    (version) => {{
        const existing = window.{PAYLOAD_GLOBAL};
        if (existing && existing.version === version) {{
            return false;
        }}

        // Text of the nearest command blocks (pre / code) around a control
        const commandContext = (el, selectors) => {{
            if (!selectors || selectors.length === 0) return '';
            const group = selectors.join(', ');
            let node = el.parentElement;
            for (let depth = 0; node && depth < 6; depth++, node = node.parentElement) {{
                const blocks = node.querySelectorAll(group);
                if (blocks.length > 0) {{
                    return Array.from(blocks).map(b => b.textContent || '').join('\\n');
                }}
            }}
            return '';
        }};

        window.{PAYLOAD_GLOBAL} = {{
            version,
            describe(el, commandSelectors) {{
                const style = window.getComputedStyle(el);
                const rect = el.getBoundingClientRect();
                return {{
                    text: el.textContent || '',
                    width: rect.width,
                    display: style.display,
                    pointerEvents: style.pointerEvents,
                    disabled: !!el.disabled,
                    context: commandContext(el, commandSelectors)
                }};
            }}
        }};
        console.log(`[AutoAccept] payload v${{version}} installed`);
        return true;
    }}
"""

DESCRIBE_CALL = f"(el, selectors) => window.{PAYLOAD_GLOBAL} ? window.{PAYLOAD_GLOBAL}.describe(el, selectors) : null"

# Tabs are labelled without the payload so a freshly created frame still cycles
LABEL_CALL = "el => el.getAttribute('aria-label') || (el.textContent || '').trim()"
TEXT_CALL = "el => (el.textContent || '').trim()"
