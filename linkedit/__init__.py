"""Linked editing ranges for Qt code editors.

A host application sets up logging once at startup and then creates editors::

    from linkedit.core.config import ConfigManager
    from linkedit.core.logging import configure_logging
    from linkedit.editor import LinkedEditor

    config = ConfigManager()
    configure_logging(config.get("logging", {}).get("level", "INFO"))
    editor = LinkedEditor(path, config=config)
"""

__version__ = "0.1.0"
