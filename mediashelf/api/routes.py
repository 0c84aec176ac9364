"""API routes."""
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from mediashelf.api.models import (
    ClearMetadataResponse, DeleteResponse, DiagnosticsResponse, EpisodeFileResponse,
    ExternalVideoRequest, ExternalVideoResponse, LibraryResponse, MovieMatchRequest, MovieResponse,
    MovieSearchResult, ShowMatchRequest, ShowResponse, ShowSearchResult, SortResponse,
    StatusResponse, SyncResponse
)
from mediashelf.config import get_config
from mediashelf.core.jobs import LibraryJobs, UnknownItemError, get_jobs
from mediashelf.core.models import (
    Inventory, JobBusyError, LibraryAccessError, MediaSource, Movie, Show, SortResult, SyncResult,
    UnifiedMovie, UnifiedShow
)
from mediashelf.services.errors import CatalogError, CatalogNotConfiguredError

logger = logging.getLogger(__name__)
router = APIRouter()


def _busy(e: JobBusyError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


def _catalog_failure(e: Exception) -> HTTPException:
    if isinstance(e, CatalogNotConfiguredError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=502, detail=f"Catalog request failed: {e}")


# Conversions

def show_response(show: Show) -> ShowResponse:
    record = show.metadata
    files = []
    for file in show.playlist():
        episode = file.metadata
        files.append(EpisodeFileResponse(
            name=file.name,
            path=str(file.path),
            season=file.episode_info[0] if file.episode_info else None,
            episode=file.episode_info[1] if file.episode_info else None,
            title=episode.display_name if episode else None,
            overview=episode.overview if episode else None,
            air_date=episode.air_date if episode else None,
            has_still=bool(episode and episode.still_data),
        ))
    return ShowResponse(
        name=show.name,
        display_name=record.display_name if record else None,
        catalog_id=record.catalog_id if record else None,
        source=record.source if record else None,
        overview=record.overview if record else None,
        first_air_date=record.first_air_date if record else None,
        has_poster=bool(record and record.poster_data),
        last_updated=record.last_updated if record else None,
        files=files,
    )


def movie_response(movie: Movie) -> MovieResponse:
    record = movie.metadata
    return MovieResponse(
        file_name=movie.name,
        path=str(movie.path),
        display_name=record.display_name if record else None,
        catalog_id=record.catalog_id if record else None,
        source=record.source if record else None,
        overview=record.overview if record else None,
        release_date=record.release_date if record else None,
        runtime=record.runtime if record else None,
        has_poster=bool(record and record.poster_data),
        last_updated=record.last_updated if record else None,
    )


def library_response(inventory: Inventory) -> LibraryResponse:
    return LibraryResponse(
        root=str(inventory.root),
        scanned_at=inventory.scanned_at,
        shows=[show_response(show) for show in inventory.shows],
        movies=[movie_response(movie) for movie in inventory.movies],
    )


def sort_response(result: SortResult) -> SortResponse:
    return SortResponse(**asdict(result), is_clean=result.is_clean)


def sync_response(result: SyncResult) -> SyncResponse:
    return SyncResponse(**asdict(result))


# Library operations

@router.post("/api/scan", response_model=LibraryResponse)
async def scan(jobs: LibraryJobs = Depends(get_jobs)):
    """Scanne la bibliothèque et retourne l'inventaire."""
    try:
        inventory = await jobs.scan()
    except JobBusyError as e:
        raise _busy(e)
    except LibraryAccessError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return library_response(inventory)


@router.get("/api/library", response_model=LibraryResponse)
async def library(jobs: LibraryJobs = Depends(get_jobs)):
    """Dernier inventaire (scan au premier appel)."""
    if jobs.inventory is None:
        return await scan(jobs)
    return library_response(jobs.inventory)


@router.post("/api/sort", response_model=SortResponse)
async def sort(jobs: LibraryJobs = Depends(get_jobs)):
    try:
        result = await jobs.sort()
    except JobBusyError as e:
        raise _busy(e)
    except LibraryAccessError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return sort_response(result)


@router.post("/api/sync", status_code=202)
async def sync(jobs: LibraryJobs = Depends(get_jobs)):
    """Lance la synchronisation des métadonnées en tâche de fond."""
    try:
        jobs.start_sync()
    except JobBusyError as e:
        raise _busy(e)
    return {"message": "Metadata sync started"}


@router.post("/api/metadata/clear", response_model=ClearMetadataResponse)
async def clear_metadata(jobs: LibraryJobs = Depends(get_jobs)):
    try:
        counts = jobs.clear_all_metadata()
    except JobBusyError as e:
        raise _busy(e)
    return ClearMetadataResponse(**counts)


@router.get("/api/status", response_model=StatusResponse)
async def status(jobs: LibraryJobs = Depends(get_jobs)):
    return StatusResponse(
        busy=jobs.is_busy,
        operation=jobs.busy_with,
        last_error=jobs.last_error,
        last_sort_result=sort_response(jobs.last_sort_result) if jobs.last_sort_result else None,
        last_sync_result=sync_response(jobs.last_sync_result) if jobs.last_sync_result else None,
        last_sync_finished=jobs.last_sync_finished,
        sources=[source.display_name for source in jobs.resolver.sources],
    )


# Search / re-match

@router.get("/api/search/shows", response_model=List[ShowSearchResult])
async def search_shows(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    source: Optional[MediaSource] = None,
    jobs: LibraryJobs = Depends(get_jobs),
):
    """Recherche fusionnée (ou sur un seul catalogue si ``source``)."""
    resolver = jobs.resolver
    try:
        if source is not None:
            matches = [(show, source) for show in await resolver.search_shows(q, limit, source)]
        else:
            matches = await resolver.search_shows_with_source(q, limit)
    except (CatalogError, httpx.HTTPError) as e:
        raise _catalog_failure(e)
    return [ShowSearchResult(**asdict(show), source=found_in) for show, found_in in matches]


@router.get("/api/search/movies", response_model=List[MovieSearchResult])
async def search_movies(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    jobs: LibraryJobs = Depends(get_jobs),
):
    try:
        movies = await jobs.resolver.search_movies(q, limit)
    except (CatalogError, httpx.HTTPError) as e:
        raise _catalog_failure(e)
    return [MovieSearchResult(**asdict(movie), source=MediaSource.TMDB) for movie in movies]


@router.post("/api/shows/{name}/match", response_model=SyncResponse)
async def match_show(name: str, request: ShowMatchRequest, jobs: LibraryJobs = Depends(get_jobs)):
    """Applique un résultat de recherche choisi à une série."""
    unified = UnifiedShow(**request.model_dump(exclude={"source"}))
    try:
        result = await jobs.rematch_show(name, unified, request.source)
    except JobBusyError as e:
        raise _busy(e)
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (CatalogError, httpx.HTTPError) as e:
        raise _catalog_failure(e)
    return sync_response(result)


@router.post("/api/movies/{file_name}/match", response_model=SyncResponse)
async def match_movie(file_name: str, request: MovieMatchRequest, jobs: LibraryJobs = Depends(get_jobs)):
    unified = UnifiedMovie(**request.model_dump(exclude={"source"}))
    try:
        result = await jobs.rematch_movie(file_name, unified, request.source)
    except JobBusyError as e:
        raise _busy(e)
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (CatalogError, httpx.HTTPError) as e:
        raise _catalog_failure(e)
    return sync_response(result)


# Deletion

@router.delete("/api/shows/{name}/files", response_model=DeleteResponse)
async def delete_show_files(name: str, jobs: LibraryJobs = Depends(get_jobs)):
    """Supprime tous les fichiers d'une série, sa progression et ses métadonnées."""
    try:
        result = jobs.delete_show_files(name)
    except JobBusyError as e:
        raise _busy(e)
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return DeleteResponse(**asdict(result))


@router.delete("/api/movies", response_model=DeleteResponse)
async def delete_movies(jobs: LibraryJobs = Depends(get_jobs)):
    try:
        result = jobs.delete_movies()
    except JobBusyError as e:
        raise _busy(e)
    return DeleteResponse(**asdict(result))


# External videos

def external_response(record) -> ExternalVideoResponse:
    return ExternalVideoResponse(
        file_name=record.file_name,
        path=record.path,
        date_added=record.date_added,
        last_played=record.last_played,
        show_name=record.show_name,
        season_number=record.season_number,
        episode_number=record.episode_number,
        movie_catalog_id=record.movie_catalog_id,
    )


@router.get("/api/external", response_model=List[ExternalVideoResponse])
async def list_external(jobs: LibraryJobs = Depends(get_jobs)):
    return [external_response(record) for record in jobs.external_videos()]


@router.post("/api/external", response_model=ExternalVideoResponse, status_code=201)
async def add_external(request: ExternalVideoRequest, jobs: LibraryJobs = Depends(get_jobs)):
    """Référence une vidéo hors bibliothèque (par chemin)."""
    try:
        record = jobs.register_external_video(Path(request.path))
    except JobBusyError as e:
        raise _busy(e)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return external_response(record)


@router.delete("/api/external", response_model=DeleteResponse)
async def delete_external(jobs: LibraryJobs = Depends(get_jobs)):
    try:
        result = jobs.delete_external_videos()
    except JobBusyError as e:
        raise _busy(e)
    return DeleteResponse(**asdict(result))


# Diagnostics / config

@router.get("/api/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(jobs: LibraryJobs = Depends(get_jobs)):
    """Vérifie les connexions aux catalogues."""
    return DiagnosticsResponse(catalogs=await jobs.resolver.diagnostics())


@router.get("/api/config")
async def get_config_endpoint():
    """Récupère la configuration actuelle (sans secrets)."""
    config = get_config()
    return {
        "tmdb": {"configured": config.tmdb is not None, "base_url": config.tmdb.base_url if config.tmdb else None},
        "tvdb": {"configured": config.tvdb is not None, "base_url": config.tvdb.base_url if config.tvdb else None},
        "library": config.library.model_dump(),
        "metadata": config.metadata.model_dump(),
        "http": config.http.model_dump(),
        "app": config.app.model_dump(),
    }
