"""
Client for the primary workflow backend (n8n webhooks).

One webhook per capability. The backend signals failure either with a
non-2xx status or with a 2xx body that carries an error field; both raise.
"""
from typing import Any, Dict, Optional

from pharmassist.core.config import get_settings
from pharmassist.core.logging import get_logger
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.upstream import UpstreamClient

logger = get_logger(__name__)

WEBHOOK_PATHS: Dict[str, str] = {
    "chat": "/chat",
    "prescription": "/analyze-prescription",
    "lab_report": "/analyze-report",
    "inventory_list": "/analyze-inventory",
    "voice_bill": "/voice-bill",
    "interactions": "/interactions",
    "market": "/market-intel",
    "compliance": "/compliance-check",
    "forecast": "/forecast",
}


class WorkflowClient(UpstreamClient):
    upstream = "workflow"

    async def invoke(self, webhook: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to a webhook and return its JSON object body.

        Raises:
            NetworkUnavailable: backend unreachable
            UpstreamError: non-2xx status or embedded error envelope
            ValidationError: body is not a JSON object
        """
        path = WEBHOOK_PATHS[webhook]
        response = await self.request(webhook, "POST", path, json=payload)
        body = unwrap(normalize(response.text, fallback=None), expect=dict)
        logger.debug("workflow_response", webhook=webhook, keys=sorted(body.keys()))
        return body


_workflow_client: Optional[WorkflowClient] = None


def get_workflow_client() -> WorkflowClient:
    global _workflow_client
    if _workflow_client is None:
        settings = get_settings()
        _workflow_client = WorkflowClient(
            settings.workflow_base_url,
            timeout_seconds=settings.workflow_timeout_seconds,
        )
    return _workflow_client
