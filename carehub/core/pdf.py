"""
PDF rendering for consent forms and patient statements.

Signed consent forms are rendered from their HTML with weasyprint after
the form controls are frozen into static markup. Statements are plain
text laid out on Letter pages with reportlab.
"""
import html
import io
import re
import textwrap
from html.parser import HTMLParser

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from weasyprint import HTML


PAGE_WIDTH, PAGE_HEIGHT = letter
MARGIN = inch
LINE_HEIGHT = 14
MAX_CHARS_PER_LINE = 90
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZE = 11


SUBMIT_BUTTON_RE = re.compile(
    r"<button[\s\S]*?class=([\"'])[^\"']*submit-button[^\"']*\1[\s\S]*?>[\s\S]*?</button>",
    re.IGNORECASE,
)
SUBMITTED_BUTTON = '<button class="submit-button" disabled>Submitted</button>'

CHECKED_MARK = "[x]"
UNCHECKED_MARK = "[ ]"
HIDDEN_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image", "file", "password"}
VOID_TAGS = {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}


def mark_submitted(html_content: str) -> str:
    """Replace the form's submit button with a disabled "Submitted" marker."""
    return SUBMIT_BUTTON_RE.sub(SUBMITTED_BUTTON, html_content, count=1)


def _start_tag(tag: str, attrs, self_closing: bool = False) -> str:
    parts = [tag]
    for name, value in attrs:
        parts.append(name if value is None else f'{name}="{html.escape(value, quote=True)}"')
    return f"<{' '.join(parts)}{' /' if self_closing else ''}>"


class FormFlattener(HTMLParser):
    """
    Rewrite an HTML form so the values a patient entered survive rendering.

    Text inputs become spans holding their value, checkboxes and radios
    become [x] / [ ] marks, a select keeps only its selected option and a
    textarea keeps its text. Scripts and non-visual inputs are dropped.
    Images, including data-URI signatures, pass through unchanged.

    `has_content` tells whether anything visible was found.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.out: list[str] = []
        self.has_content = False
        self._in_script = False
        self._in_style = False
        self._in_select = False
        self._option_selected = False
        self._select_value: str | None = None
        self._first_option: str | None = None

    def flatten(self, html_content: str) -> str:
        self.feed(html_content)
        self.close()
        return "".join(self.out)

    def _value_span(self, value: str) -> str:
        if value.strip():
            self.has_content = True
        return f'<span class="form-value">{html.escape(value, quote=False)}</span>'

    def handle_starttag(self, tag, attrs):
        self._start(tag, attrs, self_closing=False)

    def handle_startendtag(self, tag, attrs):
        self._start(tag, attrs, self_closing=True)

    def _start(self, tag, attrs, self_closing):
        if tag == "script":
            self._in_script = not self_closing
            return
        if tag == "style":
            self._in_style = not self_closing

        values = dict(attrs)
        if tag == "input":
            input_type = (values.get("type") or "text").lower()
            if input_type in HIDDEN_INPUT_TYPES:
                return
            if input_type in ("checkbox", "radio"):
                self.out.append(self._value_span(CHECKED_MARK if "checked" in values else UNCHECKED_MARK))
            else:
                self.out.append(self._value_span(values.get("value") or ""))
            return
        if tag == "textarea":
            self.out.append('<div class="form-value">')
            return
        if tag == "select":
            self._in_select = True
            self._select_value = None
            self._first_option = None
            return
        if self._in_select:
            if tag == "option":
                self._option_selected = "selected" in values
            return

        if tag == "img" and values.get("src"):
            self.has_content = True
        self.out.append(_start_tag(tag, attrs, self_closing and tag not in VOID_TAGS))

    def handle_endtag(self, tag):
        if tag == "script":
            self._in_script = False
            return
        if tag == "style":
            self._in_style = False
        if tag == "textarea":
            self.out.append("</div>")
            return
        if tag == "select":
            self._in_select = False
            chosen = self._select_value if self._select_value is not None else (self._first_option or "")
            self.out.append(self._value_span(chosen))
            return
        if self._in_select or tag in VOID_TAGS:
            return
        self.out.append(f"</{tag}>")

    def handle_data(self, data):
        if self._in_script:
            return
        if self._in_select:
            text = data.strip()
            if text and self._first_option is None:
                self._first_option = text
            if text and self._option_selected:
                self._select_value = text
            return
        if self._in_style:
            self.out.append(data)
            return
        if data.strip():
            self.has_content = True
        self.out.append(html.escape(data, quote=False))

    def handle_comment(self, data):
        pass

    def handle_decl(self, decl):
        self.out.append(f"<!{decl}>")


def render_pdf_from_html(html_content: str, title: str) -> bytes:
    """
    Render a submitted HTML form into a PDF byte string.

    Raises:
        ValueError: when the HTML holds nothing visible.
    """
    if html_content is None:
        raise ValueError("html_content must not be None")

    flattener = FormFlattener()
    flat = flattener.flatten(html_content)
    if not flattener.has_content:
        raise ValueError("HTML content produced an empty document")

    document = HTML(string=flat).render()
    document.metadata.title = title
    return document.write_pdf()


def _draw_wrapped_lines(c: canvas.Canvas, text: str, y: float) -> float:
    c.setFont(FONT, FONT_SIZE)
    for raw in text.splitlines():
        lines = textwrap.wrap(raw, MAX_CHARS_PER_LINE) if raw.strip() else [""]
        for line in lines:
            if y < MARGIN:
                c.showPage()
                c.setFont(FONT, FONT_SIZE)
                y = PAGE_HEIGHT - MARGIN
            c.drawString(MARGIN, y, line)
            y -= LINE_HEIGHT
    return y


def render_pdf_from_text(text: str, title: str) -> bytes:
    """Lay out plain text under a bold title and return the PDF bytes."""
    if not text or not text.strip():
        raise ValueError("text must not be empty")

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle(title)
    c.setFont(FONT_BOLD, FONT_SIZE + 3)
    y = PAGE_HEIGHT - MARGIN
    c.drawString(MARGIN, y, title)
    y -= LINE_HEIGHT * 2
    _draw_wrapped_lines(c, text, y)
    c.save()
    return buffer.getvalue()
