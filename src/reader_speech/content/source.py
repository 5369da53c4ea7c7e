"""
Content Sources.

A content source serves book metadata and the text of individual chunks
(pages or sections). The cache layer only depends on the ContentSource
interface; two implementations are provided:

    HttpContentSource       GET {base}/api/books/{id}
                            GET {base}/api/books/{id}/chunks/{index}
    DirectoryContentSource  {root}/{id}/book.json
                            {root}/{id}/{index}.txt

Both raise NotFoundError when the book or chunk does not exist and
ContentUnavailableError for every other failure.
"""
from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from reader_speech.core.logging import get_logger, verbose
from reader_speech.errors import ContentUnavailableError, NotFoundError

_LOG = get_logger("reader-speech.content")


@dataclass(frozen=True)
class Book:
    """
    Book metadata.

    Attributes:
        id: Content id used for chunk requests.
        title: Display title.
        author: First listed author.
        pages: Number of chunks.
        cover_url: Thumbnail URL, may be empty.
        description: Blurb, may be empty.
    """
    id: str
    title: str
    author: str = "Unknown Author"
    pages: int = 0
    cover_url: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, content_id: str, data: Dict[str, Any]) -> "Book":
        return cls(
            id=str(data.get("id") or content_id),
            title=str(data.get("title", "")),
            author=str(data.get("author") or "Unknown Author"),
            pages=int(data.get("pages", 0) or 0),
            cover_url=str(data.get("cover_url") or data.get("coverUrl") or ""),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ContentSource(ABC):
    """
    Interface for anything that can serve books and chunks.

    Implementations must be safe to call concurrently from several tasks
    on the same event loop.
    """

    @abstractmethod
    async def fetch_chunk(self, content_id: str, index: int) -> str:
        """
        Fetch the text of one chunk.

        Raises:
            NotFoundError: The chunk does not exist.
            ContentUnavailableError: Any other failure.
        """

    @abstractmethod
    async def fetch_book(self, content_id: str) -> Book:
        """
        Fetch book metadata.

        Raises:
            NotFoundError: The book does not exist.
            ContentUnavailableError: Any other failure.
        """

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""


class HttpContentSource(ContentSource):
    """
    Content source backed by the reading application's HTTP API.

    Example:
        source = HttpContentSource("http://localhost:3000")
        text = await source.fetch_chunk("moby-dick", 4)
        await source.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. "http://localhost:3000".
            timeout_s: Per-request timeout.
            client: Pre-built client (tests pass one with a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)

    async def _get(self, path: str, what: str) -> httpx.Response:
        try:
            response = await self._client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as e:
            raise ContentUnavailableError(
                f"Failed to load {what}: {e}", details={"path": path}
            ) from e

        if response.status_code == 404:
            raise NotFoundError(f"{what} not found", details={"path": path})
        if response.is_error:
            raise ContentUnavailableError(
                f"Failed to load {what}: HTTP {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )
        return response

    async def fetch_chunk(self, content_id: str, index: int) -> str:
        response = await self._get(
            f"/api/books/{content_id}/chunks/{index}",
            f"chunk {index} of book {content_id}",
        )
        verbose(_LOG, "chunk_fetched", content_id=content_id, index=index, chars=len(response.text))
        return response.text

    async def fetch_book(self, content_id: str) -> Book:
        response = await self._get(f"/api/books/{content_id}", f"book {content_id}")
        try:
            data = response.json()
        except ValueError as e:
            raise ContentUnavailableError(f"Invalid book payload for {content_id}") from e
        return Book.from_dict(content_id, data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class DirectoryContentSource(ContentSource):
    """
    Content source reading a local directory tree.

    Layout:
        root/
        └── moby-dick/
            ├── book.json      {"title": "...", "author": "...", "pages": 3}
            ├── 0.txt
            ├── 1.txt
            └── 2.txt

    Files are read in a worker thread so the event loop is not blocked.
    """

    def __init__(self, root_dir: str | Path):
        self.root = Path(root_dir)

    def _book_dir(self, content_id: str) -> Path:
        # Refuse ids that would escape the root directory
        path = (self.root / content_id).resolve()
        if self.root.resolve() not in path.parents:
            raise NotFoundError(f"book {content_id} not found")
        return path

    async def fetch_chunk(self, content_id: str, index: int) -> str:
        path = self._book_dir(content_id) / f"{index}.txt"
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise NotFoundError(
                f"chunk {index} of book {content_id} not found", details={"path": str(path)}
            ) from e
        except OSError as e:
            raise ContentUnavailableError(
                f"Failed to load chunk {index} of book {content_id}: {e}"
            ) from e
        verbose(_LOG, "chunk_read", content_id=content_id, index=index, chars=len(text))
        return text

    async def fetch_book(self, content_id: str) -> Book:
        book_dir = self._book_dir(content_id)
        meta_path = book_dir / "book.json"
        try:
            raw = await asyncio.to_thread(meta_path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except FileNotFoundError:
            if not book_dir.is_dir():
                raise NotFoundError(f"book {content_id} not found") from None
            # No metadata file: derive what we can from the chunk files
            pages = len(list(book_dir.glob("*.txt")))
            return Book(id=content_id, title=content_id, pages=pages)
        except (OSError, ValueError) as e:
            raise ContentUnavailableError(f"Failed to load book {content_id}: {e}") from e
        return Book.from_dict(content_id, data)
