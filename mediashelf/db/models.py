"""SQLAlchemy models for the metadata cache."""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float, LargeBinary, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

from mediashelf.core.models import utcnow

Base = declarative_base()


class ShowMetadata(Base):
    """Métadonnées d'une série, clé = nom local de la série."""
    __tablename__ = "show_metadata"

    id = Column(Integer, primary_key=True, index=True)
    show_name = Column(String, nullable=False, unique=True, index=True)  # Nom du dossier local
    catalog_id = Column(Integer, nullable=False)
    source = Column(String, nullable=True)  # MediaSource qui a fourni le match
    display_name = Column(String, nullable=False)
    overview = Column(Text, nullable=True)
    poster_path = Column(String, nullable=True)
    backdrop_path = Column(String, nullable=True)
    poster_data = Column(LargeBinary, nullable=True)
    first_air_date = Column(String, nullable=True)
    last_updated = Column(DateTime, default=utcnow, nullable=False)


class EpisodeMetadata(Base):
    """Métadonnées d'un épisode.

    Clé composite (show_name, season, episode), indépendante du chemin:
    déplacer un fichier entre dossiers de saison ne perd pas le cache.
    """
    __tablename__ = "episode_metadata"
    __table_args__ = (
        UniqueConstraint("show_name", "season_number", "episode_number", name="uq_episode_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    show_name = Column(String, nullable=False, index=True)
    season_number = Column(Integer, nullable=False)
    episode_number = Column(Integer, nullable=False)
    catalog_id = Column(Integer, nullable=False)
    show_catalog_id = Column(Integer, nullable=False)
    display_name = Column(String, nullable=False)
    overview = Column(Text, nullable=True)
    still_path = Column(String, nullable=True)
    still_data = Column(LargeBinary, nullable=True)
    air_date = Column(String, nullable=True)
    last_updated = Column(DateTime, default=utcnow, nullable=False)


class MovieMetadata(Base):
    """Métadonnées d'un film, clé = nom de fichier d'origine."""
    __tablename__ = "movie_metadata"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String, nullable=False, unique=True, index=True)
    catalog_id = Column(Integer, nullable=False, index=True)
    source = Column(String, nullable=True)
    display_name = Column(String, nullable=False)
    overview = Column(Text, nullable=True)
    poster_path = Column(String, nullable=True)
    backdrop_path = Column(String, nullable=True)
    poster_data = Column(LargeBinary, nullable=True)
    release_date = Column(String, nullable=True)
    runtime = Column(Integer, nullable=True)
    last_updated = Column(DateTime, default=utcnow, nullable=False)


class VideoProgress(Base):
    """Progression de lecture d'un fichier (chemin relatif à la racine)."""
    __tablename__ = "video_progress"

    id = Column(Integer, primary_key=True, index=True)
    relative_path = Column(String, nullable=False, index=True)
    file_name = Column(String, nullable=False, index=True)
    position_seconds = Column(Float, default=0.0, nullable=False)
    duration = Column(Float, default=0.0, nullable=False)
    last_played = Column(DateTime, default=utcnow, nullable=False)
    watched = Column(Boolean, default=False, nullable=False)


class ExternalVideo(Base):
    """Vidéo hors bibliothèque, référencée par chemin."""
    __tablename__ = "external_videos"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String, nullable=False, unique=True, index=True)
    path = Column(String, nullable=False)
    date_added = Column(DateTime, default=utcnow, nullable=False)
    last_played = Column(DateTime, nullable=True)

    # Un seul des deux liens est renseigné
    show_name = Column(String, nullable=True)
    season_number = Column(Integer, nullable=True)
    episode_number = Column(Integer, nullable=True)
    movie_catalog_id = Column(Integer, nullable=True)
