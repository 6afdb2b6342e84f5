from __future__ import annotations

from typing import Any, Dict, List

import requests

from utils.config import Config
from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec

_logger = get_logger(__name__)

MAX_RESULTS_PER_QUERY = 10
MAX_QUERIES = 5


def _normalize_queries(query_param: Any) -> List[str]:
    if isinstance(query_param, str):
        queries = [query_param.strip()] if query_param.strip() else []
    elif isinstance(query_param, list):
        queries = [str(q).strip() for q in query_param if str(q).strip()]
    else:
        raise ValueError("query must be a string or list of strings")

    if not queries:
        raise ValueError("At least one non-empty query is required")
    if len(queries) > MAX_QUERIES:
        raise ValueError(f"At most {MAX_QUERIES} queries can be searched at once")
    return queries


def _search_single_query(query: str, max_results: int, api_key: str) -> Dict[str, Any]:
    """Run one query against the search API. Network and HTTP failures are reported, not raised."""
    try:
        response = requests.post(
            f"{Config.get_web_search_base_url()}/search",
            json={
                "api_key": api_key,
                "query": query,
                "include_answer": True,
                "max_results": max_results,
            },
            timeout=Config.get_web_search_timeout(),
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        _logger.warning(f"Web search failed for {query!r}: {e}")
        return {"status": "error", "error": str(e), "answer": None, "results": [], "count": 0}

    results = [
        {
            "title": item.get("title") or "",
            "url": item.get("url") or "",
            "content": item.get("content") or "",
            "score": item.get("score", 0.0),
        }
        for item in payload.get("results") or []
    ]
    return {
        "status": "success",
        "answer": payload.get("answer"),
        "results": results,
        "count": len(results),
    }


def _format_search_results(results_by_query: Dict[str, Any]) -> str:
    """Format search results into readable text output."""
    output_lines = []

    for query, data in results_by_query.items():
        output_lines.append(f"### Search Results for: \"{query}\"")

        if data["status"] == "error":
            output_lines.append(f"ERROR: {data.get('error', 'Unknown error')}")
            output_lines.append("")
            continue
        if data.get("answer"):
            output_lines.append(f"Answer: {data['answer']}")
        if not data["results"]:
            output_lines.append("No results found.")

        for idx, result in enumerate(data["results"], 1):
            output_lines.append(f"{idx}. {result['title']}")
            output_lines.append(f"   URL: {result['url']}")
            output_lines.append(f"   {result['content']}")
        output_lines.append("")

    return "\n".join(output_lines).rstrip()


def _tool_web_search(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Search the web for current information.

    Each query is sent to the Tavily search API with an AI summary
    requested. A query that fails is reported under its own key so the
    others still return; the call only fails as a whole when every
    query does.
    """
    queries = _normalize_queries(params.get("query"))
    max_results = params.get("maxResults", 5)
    if not isinstance(max_results, int) or isinstance(max_results, bool) or max_results < 1:
        raise ValueError("maxResults must be a positive integer")
    if max_results > MAX_RESULTS_PER_QUERY:
        raise ValueError(f"maxResults cannot exceed {MAX_RESULTS_PER_QUERY}")

    api_key = Config.get_tavily_api_key()
    if not api_key:
        raise ValueError("TAVILY_API_KEY is not configured")

    results_by_query = {query: _search_single_query(query, max_results, api_key) for query in queries}
    successful = [q for q, data in results_by_query.items() if data["status"] == "success"]
    total_results = sum(data["count"] for data in results_by_query.values())

    output: Dict[str, Any] = {
        "success": bool(successful),
        "query": queries[0] if len(queries) == 1 else queries,
        "resultsByQuery": results_by_query,
        "totalResults": total_results,
        "formattedOutput": _format_search_results(results_by_query),
    }
    if not successful:
        output["error"] = results_by_query[queries[0]]["error"]

    return ToolResult(
        output=output,
        metadata={
            "total_queries": len(queries),
            "queries_failed": len(queries) - len(successful),
            "total_results": total_results,
        },
    )


web_search_spec = ToolSpec(
    name="web_search",
    version="1.0",
    description=(
        "Search the web for current, real-time information. "
        "Use this tool for up-to-date facts, news, events, or anything that may be beyond your knowledge cutoff. "
        "Returns a short answer plus ranked results with source URLs."
    ),
    effects=["net"],
    in_schema={
        "type": "object",
        "properties": {
            "query": {
                "description": "Search query, or a list of up to 5 queries. Be specific and concise.",
                "oneOf": [
                    {"type": "string"},
                    {"type": "array", "items": {"type": "string"}}
                ]
            },
            "maxResults": {
                "type": "integer",
                "minimum": 1,
                "maximum": MAX_RESULTS_PER_QUERY,
                "description": "Results to return per query (1-10, default: 5)"
            }
        },
        "required": ["query"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "query": {},
            "resultsByQuery": {"type": "object"},
            "totalResults": {"type": "integer"},
            "formattedOutput": {"type": "string"}
        }
    },
    fn=_tool_web_search,
)
