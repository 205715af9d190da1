from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from app.api.deps import ImageStoreDep

router = APIRouter()


@router.get("/{filename}", name="image")
async def get_image(filename: str, image_store: ImageStoreDep):
    """
    Serve a stored image (public, so plain <img> tags work).
    Files are immutable per id apart from cover replacement, hence the short cache.
    """
    stem, _, extension = filename.rpartition(".")
    if not stem.isdigit() or extension.lower() != image_store.image_format:
        raise HTTPException(status_code=404, detail="Image not found")

    path = image_store.path_for(int(stem))
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Image not found")

    return FileResponse(
        path,
        media_type=f"image/{image_store.image_format}",
        headers={"Cache-Control": "public, max-age=300"}
    )
