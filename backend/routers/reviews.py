"""
Router reviews : avis clients sur les livreurs.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import get_identity
from database import db
from models.review import Review, ReviewCreate

router = APIRouter()


@router.post("", status_code=201, summary="Laisser un avis")
async def create_review(body: ReviewCreate, identity: dict = Depends(get_identity)):
    review = Review(
        **body.model_dump(exclude={"rider_email"}),
        rider_email=body.rider_email.strip().lower(),
        reviewer_email=identity["email"],
    )
    doc = review.model_dump()
    await db.reviews.insert_one(doc)
    return {k: v for k, v in doc.items() if k != "_id"}


@router.get("", summary="Avis d'un livreur")
async def list_reviews(
    rider_email: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    query = {"rider_email": rider_email.strip().lower()} if rider_email else {}
    cursor = db.reviews.find(query, {"_id": 0, "reviewer_email": 0}).sort("created_at", -1).skip(skip).limit(limit)
    reviews = await cursor.to_list(length=limit)
    # Moyenne sur tous les avis du filtre, pas seulement la page
    summary = await db.reviews.aggregate([
        {"$match": query},
        {"$group": {"_id": None, "average": {"$avg": "$rating"}, "total": {"$sum": 1}}},
    ]).to_list(length=1)
    average = summary[0]["average"] if summary else None
    return {
        "reviews": reviews,
        "total": summary[0]["total"] if summary else 0,
        "average_rating": round(average, 2) if average is not None else None,
    }
