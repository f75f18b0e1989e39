from shared.helper.HelperConfig import HelperConfig
from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface


class NotifierClientManager:
    """
    Manager class to handle the notifier client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the notifier engine from ENV configuration.

        Returns:
            str: The name of the notifier engine, capitalized (e.g. "Webhook").

        Raises:
            ValueError: If no notifier engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val("NOTIFIER_ENGINE")
        if not engine:
            raise ValueError("No notifier engine specified in configuration.")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> NotifierClientInterface:
        """
        Initializes the notifier client based on the engine specified in the configuration.

        Returns:
            NotifierClientInterface: The notifier client instance.

        Raises:
            ValueError: If the specified engine cannot be instantiated.
        """
        engine = self._get_engine_from_env()
        className = f"NotifierClient{engine}"
        try:
            module = __import__(
                f"shared.clients.notifier.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
            client = client_class(helper_config=self.helper_config)
            self.logging.debug(f"Instantiated notifier client for engine: {engine}")
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported notifier engine specified: '{engine}'. Error: {e}")
        return client

    def get_client(self) -> NotifierClientInterface:
        """
        Returns the instantiated notifier client.

        Returns:
            NotifierClientInterface: The notifier client instance.
        """
        return self.client
