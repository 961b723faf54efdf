import uvicorn

from api.app_factory import create_app
from main_configs import MAIN_APP_HOST, MAIN_APP_PORT

# ============================================================
# App instance (used by uvicorn & tests)
# ============================================================
app = create_app()


if __name__ == "__main__":
    uvicorn.run("main_app:app", host=MAIN_APP_HOST, port=MAIN_APP_PORT, reload=False)
