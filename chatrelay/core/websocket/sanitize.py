"""
Inbound text normalization.

Every name/message field goes through `sanitize` exactly once before it is
persisted or broadcast.
"""
import html

# ASCII whitespace only; Unicode spaces inside the text are kept as-is
_ASCII_WHITESPACE = " \t\n\r\x0b\x0c"
_TO_SPACE = {"\n", "\r", "\t"}


def _strip_controls(s: str) -> str:
    out = []
    for ch in s:
        if ch in _TO_SPACE:
            out.append(" ")
        elif ch < "\x20":
            continue
        else:
            out.append(ch)
    return "".join(out)


def sanitize(s: str, max_len: int) -> str:
    """
    Trim, flatten line breaks/tabs to spaces, drop other C0 controls, cap at
    max_len code points, then HTML-escape.

    The cap is applied to the escaped result as well: if escaping pushes the
    text over max_len, trailing source characters are removed until it fits,
    so an entity is never cut in half.
    """
    if not s or max_len <= 0:
        return ""
    text = _strip_controls(s.strip(_ASCII_WHITESPACE))
    text = text[:max_len]
    escaped = html.escape(text, quote=True)
    while len(escaped) > max_len:
        text = text[:-1]
        escaped = html.escape(text, quote=True)
    return escaped
