from autodoc_rag.config.settings import AppConfig, configure_logging, rag_config_from_env

__all__ = ["AppConfig", "configure_logging", "rag_config_from_env"]
