"""User-curated memories. Nothing here is written by the voice engine itself."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from models import Memory, User
from schemas import MemoryCreate, MemoryResponse
from deps import get_db, get_current_user

router = APIRouter(prefix="/api/memories", tags=["memories"])


@router.get("", response_model=list[MemoryResponse])
async def list_memories(
    limit: int = 50,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    take = max(1, min(int(limit or 50), 250))
    rows = (
        db.query(Memory)
        .filter(Memory.user_id == user.id)
        .order_by(Memory.created_at.desc(), Memory.id.desc())
        .limit(take)
        .all()
    )
    return [MemoryResponse.model_validate(r) for r in rows]


@router.post("", response_model=MemoryResponse, status_code=status.HTTP_201_CREATED)
async def add_memory(
    request: MemoryCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    content = request.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="content is required")

    rec = Memory(
        user_id=user.id,
        content=content,
        tags=[t.strip().lower() for t in request.tags if (t or "").strip()],
        importance=request.importance,
        source_conversation_id=request.source_conversation_id,
    )
    db.add(rec)
    db.commit()
    db.refresh(rec)
    return MemoryResponse.model_validate(rec)


@router.delete("/{memory_id}")
async def delete_memory(
    memory_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rec = db.query(Memory).filter(Memory.id == memory_id, Memory.user_id == user.id).first()
    if rec is None:
        raise HTTPException(status_code=404, detail="Memory not found")
    db.delete(rec)
    db.commit()
    return {"ok": True, "deleted": memory_id}


@router.delete("")
async def clear_memories(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deleted = db.query(Memory).filter(Memory.user_id == user.id).delete()
    db.commit()
    return {"ok": True, "deleted": int(deleted or 0)}
