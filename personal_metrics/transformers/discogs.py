"""Transform Discogs collection releases into widget records."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlsplit

from personal_metrics.services.media_sync import MediaReference
from personal_metrics.transformers.books import public_media_url

DISCOGS_MEDIA_PREFIX = "discogs"

RESOURCE_FIELDS = frozenset(
    {
        "id",
        "title",
        "year",
        "country",
        "released",
        "released_formatted",
        "status",
        "data_quality",
        "tracklist",
        "genres",
        "styles",
        "notes",
        "uri",
        "resource_url",
        "master_id",
        "master_url",
        "main_release",
        "main_release_url",
    }
)
NESTED_RESOURCE_FIELDS = frozenset({"position", "title", "duration", "type"})

IMAGE_FIELDS = (("thumb", "thumb"), ("cover", "cover_image"))


def destination_key(image_url: str, release_id: Any, image_type: str = "thumb") -> str:
    extension = PurePosixPath(urlsplit(image_url).path).suffix
    return f"{DISCOGS_MEDIA_PREFIX}/{release_id}_{image_type}{extension}"


def _filter_nested(value: Any) -> Any:
    if isinstance(value, list):
        return [_filter_nested(item) for item in value]
    if isinstance(value, Mapping):
        return {key: item for key, item in value.items() if key in NESTED_RESOURCE_FIELDS}
    return value


def filter_resource(resource: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Keep only the release detail fields the widget renders.

    Nested objects (tracklist entries) are reduced to position, title, duration
    and type.
    """

    if not isinstance(resource, Mapping):
        return None
    return {
        key: _filter_nested(value) for key, value in resource.items() if key in RESOURCE_FIELDS
    }


def release_media_references(release: Mapping[str, Any]) -> list[MediaReference]:
    release_id = release.get("id")
    info = release.get("basic_information")
    if release_id is None or not isinstance(info, Mapping):
        return []
    references: list[MediaReference] = []
    for image_type, field in IMAGE_FIELDS:
        url = info.get(field)
        if not isinstance(url, str) or not url:
            continue
        references.append(
            MediaReference(
                destination_key=destination_key(url, release_id, image_type),
                source_url=url,
                logical_id=f"{release_id}_{image_type}",
            )
        )
    return references


def transform_release(release: Mapping[str, Any], *, public_base_url: str = "") -> dict[str, Any]:
    release_id = release.get("id")
    info = release.get("basic_information")
    info = info if isinstance(info, Mapping) else {}
    thumb = info.get("thumb") or None
    cover_image = info.get("cover_image") or None

    transformed: dict[str, Any] = {
        "id": release_id,
        "instanceId": release.get("instance_id"),
        "dateAdded": release.get("date_added"),
        "rating": release.get("rating"),
        "folderId": release.get("folder_id"),
        "notes": release.get("notes"),
        "basicInformation": {
            "id": info.get("id"),
            "masterId": info.get("master_id"),
            "masterUrl": info.get("master_url"),
            "resourceUrl": info.get("resource_url"),
            "thumb": thumb,
            "coverImage": cover_image,
            "cdnThumbUrl": (
                public_media_url(public_base_url, destination_key(thumb, release_id, "thumb"))
                if thumb
                else None
            ),
            "cdnCoverUrl": (
                public_media_url(public_base_url, destination_key(cover_image, release_id, "cover"))
                if cover_image
                else None
            ),
            "title": info.get("title"),
            "year": info.get("year"),
            "formats": info.get("formats"),
            "labels": info.get("labels"),
            "artists": info.get("artists"),
            "genres": info.get("genres"),
            "styles": info.get("styles"),
        },
    }
    if release.get("resource"):
        transformed["resource"] = release["resource"]
    return transformed


__all__ = [
    "DISCOGS_MEDIA_PREFIX",
    "destination_key",
    "filter_resource",
    "release_media_references",
    "transform_release",
]
