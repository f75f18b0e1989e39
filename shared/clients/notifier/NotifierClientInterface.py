from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.events import DeliveryResult, EngagementEvent


class NotifierClientInterface(ClientInterface):
    """
    Delivers engagement events (push, SMS, email, ...) on behalf of the engine.

    The engine never formats or routes messages itself; it hands over an event
    and records whatever DeliveryResult comes back.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "notifier"
        """
        return "notifier"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_deliver(self, event: EngagementEvent) -> DeliveryResult:
        """
        Delivers a single event to its recipient.

        Args:
            event (EngagementEvent): The event to deliver.

        Returns:
            DeliveryResult: Outcome of the hand-over to the delivery backend.
                Implementations report failures in the result rather than raising.
        """
        pass
