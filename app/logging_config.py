"""
Configuration de la journalisation
"""
import logging


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Le moteur SQL est bavard en DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
