"""
Standalone PDF generation worker script.
Runs as a separate process so a hung or crashed Chromium can be killed
without touching the API process.

stdin:  base64-encoded HTML
argv[1]: optional JSON page options (format, margin, print_background)
stdout: base64-encoded PDF
"""

import base64
import json
import sys

from playwright.sync_api import sync_playwright

DEFAULT_PAGE_OPTIONS = {
    "format": "A4",
    "print_background": True,
    "margin": {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"},
}


def generate_pdf(html: str, page_options: dict) -> bytes:
    """Generate PDF from HTML using Playwright"""
    options = {**DEFAULT_PAGE_OPTIONS, **(page_options or {})}
    with sync_playwright() as p:
        browser = p.chromium.launch(args=["--no-sandbox", "--disable-setuid-sandbox"])
        try:
            page = browser.new_page()
            page.set_content(html, wait_until="networkidle")
            return page.pdf(
                format=options["format"],
                margin=options["margin"],
                print_background=options["print_background"],
            )
        finally:
            browser.close()


def main(argv: list[str]) -> int:
    page_options = json.loads(argv[1]) if len(argv) > 1 and argv[1] else {}

    html_b64 = sys.stdin.read()
    html = base64.b64decode(html_b64).decode("utf-8")

    pdf_bytes = generate_pdf(html, page_options)

    sys.stdout.write(base64.b64encode(pdf_bytes).decode("utf-8"))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
