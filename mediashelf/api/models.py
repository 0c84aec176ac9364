"""Pydantic models for API requests/responses."""
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from mediashelf.core.models import MediaSource


class EpisodeFileResponse(BaseModel):
    name: str
    path: str
    season: Optional[int] = None
    episode: Optional[int] = None
    title: Optional[str] = None
    overview: Optional[str] = None
    air_date: Optional[str] = None
    has_still: bool = False


class ShowResponse(BaseModel):
    name: str
    display_name: Optional[str] = None
    catalog_id: Optional[int] = None
    source: Optional[str] = None
    overview: Optional[str] = None
    first_air_date: Optional[str] = None
    has_poster: bool = False
    last_updated: Optional[datetime] = None
    files: List[EpisodeFileResponse]


class MovieResponse(BaseModel):
    file_name: str
    path: str
    display_name: Optional[str] = None
    catalog_id: Optional[int] = None
    source: Optional[str] = None
    overview: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    has_poster: bool = False
    last_updated: Optional[datetime] = None


class LibraryResponse(BaseModel):
    root: str
    scanned_at: datetime
    shows: List[ShowResponse]
    movies: List[MovieResponse]


class SortResponse(BaseModel):
    scanned_files: int
    moved_files: int
    already_sorted_files: int
    unclassified_files: List[str]
    failed_moves: List[str]
    is_clean: bool


class SyncResponse(BaseModel):
    shows_processed: int
    shows_skipped: int
    shows_unmatched: List[str]
    episodes_updated: int
    movies_processed: int
    movies_skipped: int
    movies_unmatched: List[str]
    external_processed: int
    thumbnails_generated: int
    errors: List[str]


class StatusResponse(BaseModel):
    busy: bool
    operation: Optional[str] = None
    last_error: Optional[str] = None
    last_sort_result: Optional[SortResponse] = None
    last_sync_result: Optional[SyncResponse] = None
    last_sync_finished: Optional[datetime] = None
    sources: List[str]


class ShowSearchResult(BaseModel):
    id: int
    name: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    first_air_date: Optional[str] = None
    source: MediaSource


class MovieSearchResult(BaseModel):
    id: int
    title: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    source: MediaSource = MediaSource.TMDB


class ShowMatchRequest(ShowSearchResult):
    """Résultat de recherche choisi par l'utilisateur."""


class MovieMatchRequest(MovieSearchResult):
    pass


class DeleteResponse(BaseModel):
    deleted_files: List[str]
    failed: List[str]
    records_removed: int


class ClearMetadataResponse(BaseModel):
    shows: int
    episodes: int
    movies: int


class ExternalVideoRequest(BaseModel):
    path: str


class ExternalVideoResponse(BaseModel):
    file_name: str
    path: str
    date_added: datetime
    last_played: Optional[datetime] = None
    show_name: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    movie_catalog_id: Optional[int] = None


class DiagnosticsResponse(BaseModel):
    catalogs: Dict[str, Dict[str, Any]]
