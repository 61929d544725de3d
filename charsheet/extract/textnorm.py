import re

_NBSP = "\u00a0"
_THIN = "\u2009"
_NNBSP = "\u202f"
_MINUS = "\u2212"

_RE_SOFT_HYPHEN = re.compile("\u00ad")

# end-of-line hyphenation join, e.g. "Sleight of Ha-\nnd"
_RE_EOL_HYPH = re.compile(r"(?<=[a-z])-[ \t]*\r?\n[ \t]*(?=[a-z])")

_RE_SPECIAL_SPACES = re.compile("[{}]".format(re.escape(_NBSP + _THIN + _NNBSP)))
_RE_MANY_SPACES = re.compile(r"[ \t]{2,}")
_RE_CRLF = re.compile(r"\r\n?")


def normalize_sheet_text(text: str) -> str:
    """Clean PDF text so labeled patterns see plain ASCII spacing. Keeps line breaks."""
    if not text:
        return text
    s = _RE_CRLF.sub("\n", text)

    # 1) Normalize exotic spaces, typographic minus and remove soft hyphens
    s = _RE_SOFT_HYPHEN.sub("", s)
    s = _RE_SPECIAL_SPACES.sub(" ", s)
    s = s.replace(_MINUS, "-")

    # 2) Join lower-case words broken by hyphen at end of line
    s = _RE_EOL_HYPH.sub("", s)

    # 3) Collapse long runs of spaces (but keep single newlines)
    s = _RE_MANY_SPACES.sub(" ", s)

    return s
