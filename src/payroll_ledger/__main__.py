"""Run the API server: ``python -m payroll_ledger``."""

import uvicorn

from payroll_ledger.config import get_settings
from payroll_ledger.logging_config import configure_logging


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "payroll_ledger.api.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
