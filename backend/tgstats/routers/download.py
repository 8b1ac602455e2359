from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from tgstats.routers.deps import get_download_resolver
from tgstats.services.downloader import DownloadResolver, track_url

router = APIRouter(tags=["Download"])


@router.get("/download")
async def download(
    url: Optional[str] = Query(None, description="Spotify track URL"),
    trackId: Optional[str] = Query(None, description="Spotify track ID", example="4cOdK2wGLETKBW3PvgPWqT"),
    resolver: DownloadResolver = Depends(get_download_resolver),
):
    """
    **Resolve a download link for a Spotify track**

    Results are cached for five minutes per track URL.
    """
    if not url and not trackId:
        raise HTTPException(status_code=400, detail="Missing url or trackId parameter")

    return await resolver.resolve(track_url(url, trackId))
