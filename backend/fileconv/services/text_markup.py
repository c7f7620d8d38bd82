"""
Plain-text / HTML / RTF helpers shared by converters and codecs
"""
import html
import re
from html.parser import HTMLParser
from typing import Iterable, List, Optional

_DEFAULT_STYLE = """
        body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; margin: 40px; line-height: 1.6; color: #333; }
        .content { max-width: 800px; margin: 0 auto; }
        p { margin: 0 0 0.5em 0; white-space: pre-wrap; }
"""

_BLOCK_TAGS = {
    "p", "div", "br", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6",
    "section", "article", "header", "footer", "blockquote", "pre", "table", "ul", "ol",
}
_SKIP_TAGS = {"script", "style", "head"}


def escape_html(text: str) -> str:
    return html.escape(text, quote=True)


def wrap_html(title: str, body: str, style: str = _DEFAULT_STYLE) -> str:
    """Minimal complete HTML document around an already-escaped body"""
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '    <meta charset="UTF-8">\n'
        f"    <title>{escape_html(title)}</title>\n"
        f"    <style>{style}    </style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


def text_to_html(title: str, paragraphs: Iterable[str]) -> str:
    lines = "\n".join(f"        <p>{escape_html(line)}</p>" for line in paragraphs)
    body = (
        '    <div class="content">\n'
        f"        <h1>{escape_html(title)}</h1>\n"
        f"{lines}\n"
        "    </div>"
    )
    return wrap_html(title, body)


class _TextExtractor(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self.title: Optional[str] = None
        self._skip_depth = 0
        self._in_title = False

    def handle_starttag(self, tag, attrs):
        if tag == "title":
            self._in_title = True
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data):
        if self._in_title:
            self.title = (self.title or "") + data.strip()
            return
        if self._skip_depth == 0:
            self.parts.append(data)


def html_to_text(markup: str) -> str:
    """Visible text of an HTML document, one block per line"""
    parser = _TextExtractor()
    parser.feed(markup)
    parser.close()
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in "".join(parser.parts).split("\n")]
    return "\n".join(line for line in lines if line)


def html_title(markup: str) -> Optional[str]:
    parser = _TextExtractor()
    parser.feed(markup)
    parser.close()
    return parser.title or None


_RTF_TOKEN = re.compile(
    r"\\([a-z]{1,32})(-?\d{1,10})?[ ]?|\\'([0-9a-f]{2})|\\([^a-z])|([{}])|[\r\n]+|(.)",
    re.IGNORECASE | re.DOTALL,
)

# Groups whose content is metadata, not text
_RTF_DESTINATIONS = {
    "aftncn", "aftnsep", "aftnsepc", "annotation", "atnauthor", "atndate", "atnicn", "atnid",
    "atnparent", "atnref", "atntime", "atrfend", "atrfstart", "author", "background",
    "bkmkend", "bkmkstart", "buptim", "colortbl", "comment", "creatim", "doccomm",
    "docvar", "dptxbxtext", "falt", "fchars", "ffdeftext", "ffentrymcr", "ffexitmcr",
    "ffformat", "ffhelptext", "ffl", "ffname", "ffstattext", "field", "file", "filetbl",
    "fldinst", "fldtype", "fname", "fontemb", "fontfile", "fonttbl", "footer", "footerf",
    "footerl", "footerr", "footnote", "ftncn", "ftnsep", "ftnsepc", "generator", "header",
    "headerf", "headerl", "headerr", "info", "keywords", "latentstyles", "listtable",
    "listoverridetable", "nextfile", "object", "operator", "pict", "printim", "private",
    "revtim", "rsidtbl", "rxe", "stylesheet", "subject", "tc", "template", "themedata",
    "title", "txe", "xe", "xmlnstbl",
}

_RTF_SPECIALS = {
    "par": "\n", "line": "\n", "sect": "\n\n", "page": "\n\n", "tab": "\t",
    "emdash": "\u2014", "endash": "\u2013", "emspace": "\u2003", "enspace": "\u2002",
    "bullet": "\u2022", "lquote": "\u2018", "rquote": "\u2019",
    "ldblquote": "\u201c", "rdblquote": "\u201d",
}


def rtf_to_text(rtf: str) -> str:
    """Strip RTF control words and metadata groups, keeping the text runs"""
    stack = []
    ignorable = False
    ucskip = 1
    curskip = 0
    out: List[str] = []
    for match in _RTF_TOKEN.finditer(rtf):
        word, arg, hexcode, char, brace, tchar = match.groups()
        if brace:
            curskip = 0
            if brace == "{":
                stack.append((ucskip, ignorable))
            elif stack:
                ucskip, ignorable = stack.pop()
        elif char:
            curskip = 0
            if char == "~":
                if not ignorable:
                    out.append("\xa0")
            elif char in "{}\\":
                if not ignorable:
                    out.append(char)
            elif char == "*":
                ignorable = True
        elif word:
            curskip = 0
            lowered = word.lower()
            if lowered in _RTF_DESTINATIONS:
                ignorable = True
            elif ignorable:
                continue
            elif lowered in _RTF_SPECIALS:
                out.append(_RTF_SPECIALS[lowered])
            elif lowered == "uc":
                ucskip = int(arg or 1)
            elif lowered == "u" and arg is not None:
                code = int(arg)
                if code < 0:
                    code += 0x10000
                out.append(chr(code))
                curskip = ucskip
        elif hexcode:
            if curskip > 0:
                curskip -= 1
            elif not ignorable:
                out.append(bytes([int(hexcode, 16)]).decode("cp1252", errors="replace"))
        elif tchar:
            if curskip > 0:
                curskip -= 1
            elif not ignorable:
                out.append(tchar)
    return "".join(out).strip()


def _rtf_escape(text: str) -> str:
    chunks = []
    for ch in text:
        if ch in "\\{}":
            chunks.append("\\" + ch)
        elif ch == "\t":
            chunks.append("\\tab ")
        elif ord(ch) < 128:
            chunks.append(ch)
        else:
            # RTF \u takes signed 16-bit code units
            encoded = ch.encode("utf-16-le")
            for i in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[i:i + 2], "little")
                if unit > 32767:
                    unit -= 65536
                chunks.append(f"\\u{unit}?")
    return "".join(chunks)


def text_to_rtf(paragraphs: Iterable[str]) -> str:
    body = "\\par\n".join(_rtf_escape(line) for line in paragraphs)
    return "{\\rtf1\\ansi\\deff0 {\\fonttbl {\\f0 Times New Roman;}}\\f0\\fs24 " + body + "}"


def split_paragraphs(text: str) -> List[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
