import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes.channels import router as channels_router
from src.api.routes.embed import router as embed_router
from src.api.routes.graph import router as graph_router
from src.api.routes.personas import router as personas_router
from src.api.routes.search import router as search_router
from src.config import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Video Knowledge Bank API",
    description="Transcript embeddings, similarity graph, and persona ensemble answers",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(embed_router)
app.include_router(graph_router)
app.include_router(channels_router)
app.include_router(search_router)
app.include_router(personas_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
