"""Contract PDF generation service"""

import asyncio
import base64
import binascii
import json
import logging
import os
import signal
import subprocess
import sys
from typing import Optional

from ...config import COMPANY_NAME, PDF_RENDER_TIMEOUT
from ...models import Contract, ContractSignature
from ...utils.dates import format_amount, format_us_datetime
from ...utils.sanitization import escape
from .errors import RenderFailed

logger = logging.getLogger(__name__)

WORKER_MODULE = "propodocs.pdf_worker"

CONTRACT_CSS = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: Georgia, 'Times New Roman', serif; color: #1f2937; line-height: 1.8; padding: 50px; }
    .header { text-align: center; margin-bottom: 40px; padding-bottom: 30px; border-bottom: 2px solid #7A1E1E; }
    .logo { font-size: 24px; font-weight: 400; letter-spacing: 3px; color: #7A1E1E; text-transform: uppercase; }
    .title { font-size: 28px; font-weight: 700; color: #1f2937; margin-top: 20px; }
    .parties { display: flex; gap: 40px; margin: 30px 0; padding: 20px; background: #f9fafb; border-radius: 8px; }
    .party { flex: 1; }
    .party-label { font-size: 12px; text-transform: uppercase; color: #7A1E1E; margin-bottom: 8px; font-weight: 600; letter-spacing: 1px; }
    .party-name { font-weight: 700; color: #1f2937; font-size: 16px; }
    .party-details { color: #6b7280; font-size: 14px; }
    .section { margin: 30px 0; }
    .section-title { font-size: 18px; font-weight: 700; color: #7A1E1E; margin-bottom: 15px; border-bottom: 1px solid #e5e7eb; padding-bottom: 8px; }
    .content { font-size: 14px; color: #374151; white-space: pre-wrap; }
    table { width: 100%; border-collapse: collapse; margin: 20px 0; }
    th { text-align: left; padding: 12px; background: #7A1E1E; color: white; font-size: 12px; text-transform: uppercase; }
    td { padding: 12px; border-bottom: 1px solid #e5e7eb; }
    td.price { text-align: right; }
    .signature-section { margin-top: 60px; display: flex; gap: 60px; page-break-inside: avoid; }
    .signature-block { flex: 1; }
    .signature-line { border-bottom: 1px solid #1f2937; height: 60px; margin-bottom: 8px; display: flex; align-items: flex-end; }
    .signature-line img { max-height: 56px; max-width: 100%; }
    .signature-label { font-size: 12px; color: #6b7280; }
    .signer { font-size: 12px; color: #6b7280; margin-top: 4px; }
    .signed-at { font-size: 11px; color: #059669; }
    .status { display: inline-block; padding: 4px 12px; border-radius: 20px; font-size: 12px; font-weight: 600; }
    .status-signed, .status-completed { background: #d1fae5; color: #059669; }
    .status-sent, .status-viewed { background: #fef3c7; color: #d97706; }
    .status-draft, .status-cancelled { background: #e5e7eb; color: #6b7280; }
    .value-box { background: #7A1E1E; color: white; padding: 20px; border-radius: 8px; text-align: center; margin: 20px 0; }
    .value-label { font-size: 12px; opacity: 0.8; text-transform: uppercase; letter-spacing: 1px; }
    .value-amount { font-size: 32px; font-weight: 700; }
    .value-term { font-size: 14px; opacity: 0.9; margin-top: 8px; }
"""


def _is_safe_image(data: Optional[str]) -> bool:
    if not data or not data.startswith("data:image/") or ";base64," not in data:
        return False
    try:
        base64.b64decode(data.split(";base64,", 1)[1], validate=False)
    except (binascii.Error, ValueError):
        return False
    return True


class HeadlessRenderer:
    """
    HTML -> PDF through a Playwright worker subprocess.

    The worker runs in its own process group with a hard timeout. Whatever
    happens (timeout, non-zero exit, exception while waiting) the process
    group is killed and reaped before this method returns.
    """

    def __init__(self, timeout: float = PDF_RENDER_TIMEOUT, python_exe: Optional[str] = None):
        self.timeout = timeout
        self.python_exe = python_exe or sys.executable

    async def render_html_to_pdf(self, html: str, page_options: Optional[dict] = None) -> bytes:
        # Run in thread pool to not block the event loop
        return await asyncio.to_thread(self._run_worker, html, page_options or {})

    def _run_worker(self, html: str, page_options: dict) -> bytes:
        html_b64 = base64.b64encode(html.encode("utf-8")).decode("utf-8")
        command = [self.python_exe, "-m", WORKER_MODULE, json.dumps(page_options)]

        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=os.name != "nt",
            )
        except OSError as e:
            logger.error(f"❌ Failed to start PDF worker: {e}")
            raise RenderFailed(f"Failed to start PDF renderer: {e}") from e

        try:
            stdout, stderr = proc.communicate(input=html_b64, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            logger.error(f"❌ PDF worker timed out after {self.timeout}s (pid {proc.pid})")
            raise RenderFailed(f"PDF generation timed out after {self.timeout:g} seconds") from e
        except Exception as e:
            logger.error(f"❌ PDF worker communication failed: {type(e).__name__}: {e}")
            raise RenderFailed(f"PDF generation error: {e}") from e
        finally:
            if proc.poll() is None:
                self._kill(proc)

        if proc.returncode != 0:
            logger.error(f"❌ PDF worker failed (exit {proc.returncode}): {(stderr or '')[-500:]}")
            raise RenderFailed(f"PDF worker failed (exit {proc.returncode})")

        pdf_b64 = (stdout or "").strip()
        if not pdf_b64:
            raise RenderFailed("PDF worker returned empty output")
        try:
            return base64.b64decode(pdf_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RenderFailed("PDF worker returned malformed output") from e

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the worker and any Chromium children, then reap it"""
        try:
            if os.name != "nt":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            proc.kill()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.error(f"❌ PDF worker {proc.pid} did not exit after kill")


class ContractPDFService:
    """Materializes a committed contract snapshot into a PDF. Never writes contract state."""

    PAGE_OPTIONS = {
        "format": "A4",
        "print_background": True,
        "margin": {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"},
    }

    def __init__(self, renderer: Optional[HeadlessRenderer] = None):
        self.renderer = renderer or HeadlessRenderer()

    async def render(
        self,
        contract: Contract,
        signatures: list[ContractSignature],
        provider_name: Optional[str] = None,
    ) -> bytes:
        html = self.build_html(contract, signatures, provider_name)
        try:
            pdf = await self.renderer.render_html_to_pdf(html, self.PAGE_OPTIONS)
        except RenderFailed:
            raise
        except Exception as e:
            logger.error(f"❌ Renderer error for contract {contract.id}: {type(e).__name__}: {e}")
            raise RenderFailed() from e
        logger.info(f"📄 Rendered PDF for contract {contract.id} ({len(pdf)} bytes)")
        return pdf

    @staticmethod
    def build_deliverable_rows(deliverables: list[dict]) -> str:
        rows = []
        for i, d in enumerate(deliverables or [], start=1):
            suffix = "/mo" if d.get("price_type") == "monthly" else ""
            rows.append(
                "<tr>"
                f"<td>{i}. {escape(d.get('name'))}</td>"
                f"<td>{escape(d.get('description') or '-')}</td>"
                f"<td class=\"price\">${format_amount(d.get('price'))}{suffix}</td>"
                "</tr>"
            )
        return "".join(rows)

    @staticmethod
    def build_signature_block(
        label: str,
        party_name: str,
        signature: Optional[ContractSignature],
        signed_at,
    ) -> str:
        image = ""
        signer = party_name
        if signature is not None:
            signer = signature.signer_name or party_name
            if _is_safe_image(signature.signature_data):
                image = f'<img src="{escape(signature.signature_data)}" alt="{escape(label)}" />'
        signed = ""
        if signed_at:
            signed = f'<div class="signed-at">Signed: {escape(format_us_datetime(signed_at))}</div>'
        return f"""
            <div class="signature-block">
                <div class="signature-line">{image}</div>
                <div class="signature-label">{escape(label)}</div>
                <div class="signer">{escape(signer)}</div>
                {signed}
            </div>"""

    def build_html(
        self,
        contract: Contract,
        signatures: list[ContractSignature],
        provider_name: Optional[str] = None,
    ) -> str:
        provider_name = provider_name or COMPANY_NAME
        by_type = {s.signer_type: s for s in signatures}

        client_details = ""
        if contract.client_company:
            client_details += f'<div class="party-details">{escape(contract.client_company)}</div>'
        if contract.client_email:
            client_details += f'<div class="party-details">{escape(contract.client_email)}</div>'
        if contract.client_address:
            client_details += f'<div class="party-details">{escape(contract.client_address)}</div>'

        value_box = ""
        if contract.total_value:
            term = ""
            if contract.contract_term:
                term = f'<div class="value-term">Term: {escape(contract.contract_term)}</div>'
            value_box = f"""
                <div class="value-box">
                    <div class="value-label">Total Contract Value</div>
                    <div class="value-amount">${format_amount(contract.total_value)}</div>
                    {term}
                </div>"""

        rows = self.build_deliverable_rows(contract.deliverables or [])
        deliverables = ""
        if rows:
            deliverables = f"""
                <div class="section">
                    <div class="section-title">Deliverables</div>
                    <table>
                        <thead>
                            <tr><th>Service</th><th>Description</th><th style="text-align: right;">Price</th></tr>
                        </thead>
                        <tbody>{rows}</tbody>
                    </table>
                </div>"""

        client_block = self.build_signature_block(
            "Client Signature", contract.client_name, by_type.get("client"), contract.client_signed_at
        )
        provider_block = self.build_signature_block(
            "Provider Signature", provider_name, by_type.get("provider"), contract.user_signed_at
        )

        status = contract.status or "draft"
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{escape(contract.title)}</title>
    <style>{CONTRACT_CSS}</style>
</head>
<body>
    <div class="header">
        <div class="logo">{escape(provider_name)}</div>
        <div class="title">{escape(contract.title)}</div>
        <div style="margin-top: 10px;"><span class="status status-{escape(status)}">{escape(status.upper())}</span></div>
    </div>

    <div class="parties">
        <div class="party">
            <div class="party-label">Service Provider</div>
            <div class="party-name">{escape(provider_name)}</div>
        </div>
        <div class="party">
            <div class="party-label">Client</div>
            <div class="party-name">{escape(contract.client_name)}</div>
            {client_details}
        </div>
    </div>
    {value_box}
    {deliverables}
    <div class="section">
        <div class="section-title">Terms &amp; Conditions</div>
        <div class="content">{escape(contract.content)}</div>
    </div>

    <div class="signature-section">{client_block}{provider_block}
    </div>
</body>
</html>"""
