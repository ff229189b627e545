import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(service_name: str) -> None:
    """プロセス全体のログ設定。各サービスの main から一度だけ呼ぶ。"""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
    logging.getLogger(__name__).debug("Logging configured for %s", service_name)
