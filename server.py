import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from pydantic import BaseModel, Field
from fastapi.middleware.cors import CORSMiddleware

from catalog_filter import CatalogFilterAgent, CatalogItem, InMemorySessionStore, RedisSessionStore
from catalog_filter.config import LOG_LEVEL, SESSION_STORE
from catalog_filter.utils import serialize_item

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Release the session store's connections on shutdown
    await agent.store.close()


app = FastAPI(lifespan=lifespan)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify the exact origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ProductIn(BaseModel):
    id: str
    title: str
    description: str = ""
    price: float = 0.0


class FilterBody(BaseModel):
    owner_id: str = Field(min_length=1)
    products: List[ProductIn]
    query: Optional[str] = None
    reset: bool = False


def _build_store():
    if SESSION_STORE == "redis":
        return RedisSessionStore()
    return InMemorySessionStore()


# Shared agent instance; sessions are keyed by owner_id
agent = CatalogFilterAgent(store=_build_store())


@app.post("/filter")
async def filter_endpoint(body: FilterBody):
    catalog = [CatalogItem(**p.model_dump()) for p in body.products]
    outcome = await agent.filter_catalog(body.owner_id, catalog, body.query, reset=body.reset)
    return {
        "products": [serialize_item(item) for item in outcome.items],
        "source": outcome.source.value,
        "warning": outcome.warning,
        "reasoning": outcome.reasoning,
    }


@app.delete("/filter/{owner_id}")
async def clear_endpoint(owner_id: str):
    warning = await agent.clear_session(owner_id)
    return {"status": "cleared", "warning": warning}


@app.get("/")
async def root():
    return {"status": "Catalog Filter API is running", "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
