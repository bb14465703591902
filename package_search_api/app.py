import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from package_search_api.controllers.search_router import api_router as search_router
from package_search_api.services.search.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

settings = get_settings()

# Create the FastAPI app instance
app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)

# Hosted-search clients call from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(search_router)

# Health check endpoint
@app.get("/health")
def health():
    return {"status": "ok"}
