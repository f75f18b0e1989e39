import httpx

from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.engagement import DeliveryStatus
from shared.models.events import DeliveryResult, EngagementEvent


class NotifierClientWebhook(NotifierClientInterface):
    """
    Posts every event as JSON to a delivery service, which fans it out to push/SMS/email.

    The delivery service reports later outcomes (DELIVERED, READ, FAILED) back to
    POST /webhook/delivery on the engine's API.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._endpoint = self.get_config_val("ENDPOINT", default="/events", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Webhook"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="ENDPOINT", val_type="string", default="/events"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"X-API-Key": self._api_key}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/health"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_deliver(self, event: EngagementEvent) -> DeliveryResult:
        try:
            resp = await self.do_request(method="POST", endpoint=self._endpoint, json=event.model_dump(mode="json"))
        except httpx.HTTPError as exc:
            self.logging.error("Delivery of event %s (%s) failed: %s", event.id, event.kind.value, exc)
            return DeliveryResult(success=False, status=DeliveryStatus.FAILED, error=str(exc))

        if not resp.is_success:
            self.logging.warning(
                "Delivery service rejected event %s (%s) with status %d", event.id, event.kind.value, resp.status_code
            )
            return DeliveryResult(
                success=False, status=DeliveryStatus.FAILED, error=f"HTTP {resp.status_code}: {resp.text[:200]}"
            )

        reference = None
        if resp.headers.get("content-type", "").startswith("application/json"):
            reference = resp.json().get("reference")
        return DeliveryResult(success=True, status=DeliveryStatus.SENT, provider_reference=reference)
