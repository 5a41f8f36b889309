from fastapi import APIRouter
from app.events.store import OutboxStore, TortoiseOutboxStore
from app.schemas.response import SuccessResponse

router = APIRouter()
store: OutboxStore = TortoiseOutboxStore()


@router.get("/stats", response_model=SuccessResponse)
async def outbox_stats_endpoint():
    """Number of outbox events per status. A growing PENDING count means the relay is falling behind."""
    return SuccessResponse(data=await store.count_by_status())
