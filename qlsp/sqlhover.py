"""
qlsp.sqlhover - Hover over SQL to see what it returns

An example backend built on qlsp.server. Hovering a line of a SQL document
runs everything from the top of the document down to that line as one
query, and shows the rows as JSON. Writing a query over several lines and
hovering each line shows how the statement evaluates so far.

Queries run on a fresh in-memory DuckDB database, created for the hover
and thrown away after it, so nothing persists between hovers.
"""

import json
from typing import Any, Callable, Optional

import duckdb

from qlsp.config import ServerConfig
from qlsp.connection import Connection
from qlsp.protocol import TextDocumentSyncKind
from qlsp.server import BaseServer
from qlsp.types import (
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    DocumentLinkOptions,
    Hover,
    HoverParams,
    InitializedParams,
    InitializeParams,
    InitializeResult,
    ServerCapabilities,
    make_hover,
    make_range,
)

MEMORY_DATABASE = ":memory:"


def query_prefix(text: str, line: int) -> str:
    """The document's lines 0 through ``line``, joined by newlines."""
    return "\n".join(text.split("\n")[: line + 1])


def render_rows(rows: list[dict[str, Any]]) -> str:
    """Render result rows as a fenced JSON block."""
    return f"```json\n{json.dumps(rows, ensure_ascii=False, default=str)}\n```"


class SqlHoverServer(BaseServer):
    """
    Language server evaluating SQL on hover.

    Documents are kept in memory as full text, keyed by URI, and replaced
    whole on every change.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        connect: Callable[[str], Any] = duckdb.connect,
    ):
        """
        Args:
            config: Server configuration.
            connect: Opens a database given its path; must return an object
                with the DB-API execute/description/fetchall/close methods.
        """
        super().__init__(config)
        self.connect = connect
        self.documents: dict[str, str] = {}

    def initialize(
        self, conn: Connection, params: InitializeParams
    ) -> InitializeResult:
        return InitializeResult(
            capabilities=ServerCapabilities(
                text_document_sync=TextDocumentSyncKind.FULL,
                hover_provider=True,
                document_link_provider=DocumentLinkOptions(resolve_provider=False),
            ),
            server_info=self.server_info(),
        )

    def initialized(self, conn: Connection, params: InitializedParams) -> None:
        conn.log_message(f"{self.config.name} {self.config.version} ready")

    def did_open(self, conn: Connection, params: DidOpenTextDocumentParams) -> None:
        doc = params.text_document
        conn.log_message(f"Opened {doc.uri}")
        self.documents[doc.uri] = doc.text

    def did_change(
        self, conn: Connection, params: DidChangeTextDocumentParams
    ) -> None:
        uri = params.text_document.uri
        conn.log_message(f"Changed {uri}")
        # Full sync: the single change holds the whole new text
        self.documents[uri] = params.text

    def hover(self, conn: Connection, params: HoverParams) -> Optional[Hover]:
        uri = params.text_document.uri
        text = self.documents.get(uri)
        if text is None:
            conn.log_message(f"Hover on unknown document {uri}")
            return None

        position = params.position
        query = query_prefix(text, position.line)
        if not query.strip():
            return None

        rows = self.run_query(query)
        return make_hover(
            render_rows(rows),
            make_range(position.line, 0, position.line, position.character),
        )

    def run_query(self, query: str) -> list[dict[str, Any]]:
        """
        Run a query on a new in-memory database.

        Returns:
            One dict per row, keyed by column name. Statements that produce
            no result set give an empty list.
        """
        db = self.connect(MEMORY_DATABASE)
        try:
            db.execute(query)
            if db.description is None:
                return []
            columns = [desc[0] for desc in db.description]
            return [dict(zip(columns, row)) for row in db.fetchall()]
        finally:
            db.close()
