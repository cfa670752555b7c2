from app.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual run
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
