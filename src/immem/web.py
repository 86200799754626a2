from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .analyzer import AnalyzeRequest, AnalyzerService, CachedAnalyzer
from .analyzer import DEFAULT_CACHE_SIZE, DEFAULT_CACHE_TTL
from .ruby import InvalidCaptionError, ParsedCaption, parse_caption
from .selector import TargetSelection, select_target
from .vocab import VocabLibrary, VocabularyError, load_learned_words, load_vocabulary
from .words import serialize_words

if TYPE_CHECKING:
    from .nlp import NLPBackend


@dataclass(slots=True)
class WebConfig:
    vocab_path: Path | None = None
    learned_path: Path | None = None
    levels: tuple[str, ...] | None = None
    cache_ttl: float = DEFAULT_CACHE_TTL
    cache_size: int = DEFAULT_CACHE_SIZE


def parsed_caption_payload(parsed: ParsedCaption) -> dict[str, object]:
    return {
        "cleanText": parsed.clean_text,
        "displayHtml": parsed.display_html,
        "furiganaMap": [asdict(mapping) for mapping in parsed.furigana_map],
    }


def selection_payload(selection: TargetSelection | None) -> dict[str, object]:
    if selection is None:
        return {"word": None, "highlightSpan": None}
    span = list(selection.highlight_span) if selection.highlight_span else None
    return {
        "word": serialize_words([selection.word])[0],
        "highlightSpan": span,
        "cleanText": selection.clean_text,
        "furigana": asdict(selection.furigana) if selection.furigana else None,
    }


def _string_list(payload: dict[str, object], key: str) -> list[str] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise HTTPException(status_code=400, detail=f"{key} must be a list of strings.")
    return value


def _caption_html(payload: dict[str, object]) -> str:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload.")
    markup = payload.get("html")
    if not isinstance(markup, str):
        raise HTTPException(status_code=400, detail="html must be a string.")
    return markup


def create_app(config: WebConfig, backend: NLPBackend | None = None) -> FastAPI:
    if backend is None:
        from .nlp import NLPBackend

        backend = NLPBackend()
    if config.vocab_path is not None:
        vocabulary = load_vocabulary(config.vocab_path)
    else:
        vocabulary = VocabLibrary()

    service = AnalyzerService(backend)
    analyzer = CachedAnalyzer(service, ttl=config.cache_ttl, max_entries=config.cache_size)

    app = FastAPI(title="immem")
    app.state.config = config
    app.state.service = service
    app.state.vocabulary = vocabulary

    @app.get("/api/status")
    def api_status() -> JSONResponse:
        return JSONResponse(
            {
                "analyzer": service.status(),
                "vocabulary": {"entries": len(vocabulary), "levels": vocabulary.levels},
            }
        )

    @app.post("/api/analyze")
    def api_analyze(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        try:
            request = AnalyzeRequest.from_payload(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        response = service.handle(request)
        return JSONResponse(response.to_payload())

    @app.post("/api/parse")
    def api_parse(payload: dict[str, object] = Body(...)) -> JSONResponse:
        markup = _caption_html(payload)
        return JSONResponse(parsed_caption_payload(parse_caption(markup)))

    @app.post("/api/select")
    def api_select(payload: dict[str, object] = Body(...)) -> JSONResponse:
        markup = _caption_html(payload)
        learned_list = _string_list(payload, "learned")
        levels = _string_list(payload, "levels")
        if learned_list is not None:
            learned = set(learned_list)
        else:
            try:
                learned = load_learned_words(config.learned_path)
            except VocabularyError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc
        enabled_levels = levels if levels is not None else config.levels
        active = vocabulary.active_wordlist(enabled_levels, learned)
        try:
            selection = select_target(
                markup,
                analyzer=analyzer,
                active_words=active,
                learned_words=learned,
                lookup=vocabulary.lookup,
            )
        except InvalidCaptionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (RuntimeError, OSError) as exc:
            raise HTTPException(status_code=503, detail=f"Analysis failed: {exc}") from exc
        return JSONResponse(selection_payload(selection))

    @app.get("/api/vocab/{lemma}")
    def api_vocab(lemma: str) -> JSONResponse:
        entry = vocabulary.lookup(lemma)
        if entry is None:
            raise HTTPException(status_code=404, detail="Word not found")
        return JSONResponse(asdict(entry))

    return app
