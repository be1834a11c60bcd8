# Local runner (prefer: `uvicorn app.main:app`)
import os

import uvicorn

from app.core.config import settings


def main() -> None:
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=int(os.getenv("PORT", str(settings.PORT))),
        reload=os.getenv("RELOAD", "0") == "1",
        # Timers and the id → timer registry are per-process state.
        workers=1,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
