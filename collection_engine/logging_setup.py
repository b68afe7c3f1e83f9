import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once. Later calls only adjust the level so
    repeated engine construction does not stack handlers.
    """
    root = logging.getLogger()
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    if not root.handlers:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
    root.setLevel(numeric)
