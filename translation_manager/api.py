"""HTTP surface: project, category and key CRUD, translation, key analysis and export."""
import logging
import re
from typing import Any, List, Optional
from urllib.parse import quote

from fastapi import FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from translation_manager.app_config import AppConfig
from translation_manager.errors import ErrorKind, InvalidArgumentError, TranslationManagerError
from translation_manager.exporter import Exporter
from translation_manager.key_extractor import KeyExtractor
from translation_manager.key_service import TranslationKeyService
from translation_manager.key_store import KeyStore
from translation_manager.translation_validator import audit_project
from translation_manager.translator import Translator

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SCHEMA_CONFLICT: status.HTTP_409_CONFLICT,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProjectCreate(CamelModel):
    name: str = Field(..., min_length=1)
    main_language: str = Field("en", alias="mainLanguage")
    languages: Optional[List[str]] = None
    description: str = ""


class ProjectUpdate(CamelModel):
    name: Optional[str] = None
    main_language: Optional[str] = Field(None, alias="mainLanguage")
    languages: Optional[List[str]] = None
    description: Optional[str] = None


class CategoryCreate(CamelModel):
    project_id: str = Field(..., alias="projectId")
    name: str = Field(..., min_length=1)
    parent_category_id: Optional[str] = Field(None, alias="parentCategoryId")
    description: str = ""


class CategoryUpdate(CamelModel):
    name: Optional[str] = None
    parent_category_id: Optional[str] = Field(None, alias="parentCategoryId")
    description: Optional[str] = None


class KeyCreate(CamelModel):
    project_id: str = Field(..., alias="projectId")
    category_id: str = Field(..., alias="categoryId")
    key: str = Field(..., validation_alias=AliasChoices("key", "prop"))
    value_type: str = Field("text", alias="valueType")
    value: Any
    description: str = ""


class KeyUpdate(CamelModel):
    key: str = Field(..., validation_alias=AliasChoices("key", "prop"))
    value_type: str = Field("text", alias="valueType")
    value: Any
    category_id: Optional[str] = Field(None, alias="categoryId")
    description: Optional[str] = None


class TranslateRequest(CamelModel):
    text: str
    source_language: str = Field(..., alias="sourceLanguage")
    target_language: str = Field(..., alias="targetLanguage")
    context: Optional[str] = None


class AnalysisRequest(CamelModel):
    file_content: str = Field(..., alias="fileContent")
    file_name: str = Field("untitled", alias="fileName")
    project_languages: Optional[List[str]] = Field(None, alias="projectLanguages")
    main_language: str = Field("en", alias="mainLanguage")


def error_response(status_code: int, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = {"error": message}
    if detail:
        body["details"] = detail
    return JSONResponse(status_code=status_code, content=body)


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII ``filename`` and the UTF-8 ``filename*`` form (RFC 6266)."""
    ascii_name = re.sub(r'[^\x20-\x7e]|["\\]', '_', filename)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def create_app(config: Optional[AppConfig] = None, store: Optional[KeyStore] = None,
               translator: Optional[Translator] = None, extractor: Optional[KeyExtractor] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators not passed explicitly are built from ``config``; without a config
    the store is in-memory and translation is disabled.
    """
    client = config.openai_client if config else None
    if store is None:
        store = KeyStore(config.store_file_path if config else None)
    if translator is None:
        translator = Translator(client) if config is None else Translator(
            client,
            model_name=config.model_name,
            max_concurrent_api_calls=config.max_concurrent_api_calls,
            requests_per_minute=config.requests_per_minute,
            request_timeout=config.request_timeout,
            max_completion_tokens=config.max_completion_tokens,
            language_names=config.language_names,
        )
    if extractor is None:
        extractor = KeyExtractor(client) if config is None else KeyExtractor(
            client, model_name=config.analysis_model_name
        )

    service = TranslationKeyService(store, translator)
    exporter = Exporter(store)

    app = FastAPI(title="Translation Manager")
    app.state.store = store
    app.state.translator = translator

    @app.exception_handler(TranslationManagerError)
    async def handle_domain_error(request: Request, exc: TranslationManagerError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(status_code, exc.message, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}" for error in exc.errors()
        )
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", problems)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error on %s %s", request.method, request.url.path, exc_info=exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.get("/health")
    async def health():
        return {"status": "ok", "translationEnabled": translator.enabled}

    # --- projects --------------------------------------------------------

    @app.get("/api/projects")
    def list_projects():
        return {"projects": [project.to_document() for project in store.list_projects()]}

    @app.post("/api/projects", status_code=status.HTTP_201_CREATED)
    def create_project(body: ProjectCreate):
        project = store.create_project(body.name, body.main_language, body.languages, body.description)
        return {"message": "Project created successfully", "project": project.to_document()}

    @app.get("/api/projects/{project_id}")
    def get_project(project_id: str):
        project = store.get_project(project_id)
        categories = store.list_categories(project.id)
        return {
            "project": project.to_document(),
            "categories": [category.to_document() for category in categories],
            "keyCount": len(store.list_keys(project.id)),
        }

    @app.put("/api/projects/{project_id}")
    async def update_project(project_id: str, body: ProjectUpdate):
        project = await service.update_project(
            project_id,
            name=body.name,
            main_language=body.main_language,
            languages=body.languages,
            description=body.description,
        )
        return {"message": "Project updated successfully", "project": project.to_document()}

    @app.delete("/api/projects/{project_id}")
    def delete_project(project_id: str):
        store.delete_project(project_id)
        return {"message": "Project and all related data deleted successfully"}

    @app.get("/api/projects/{project_id}/audit")
    def audit(project_id: str):
        issues = audit_project(store, project_id)
        return {"projectId": project_id, "issues": issues, "ok": not issues}

    # --- categories ------------------------------------------------------

    @app.get("/api/categories")
    def list_categories(project_id: str = Query(..., alias="projectId")):
        store.get_project(project_id)
        return {"categories": [category.to_document() for category in store.list_categories(project_id)]}

    @app.post("/api/categories", status_code=status.HTTP_201_CREATED)
    def create_category(body: CategoryCreate):
        category = store.create_category(body.project_id, body.name, body.parent_category_id, body.description)
        return {"message": "Category created successfully", "category": category.to_document()}

    @app.put("/api/categories/{category_id}")
    def update_category(category_id: str, body: CategoryUpdate):
        category = store.update_category(
            category_id,
            name=body.name,
            parent_category_id=body.parent_category_id,
            description=body.description,
            reparent="parent_category_id" in body.model_fields_set,
        )
        return {"message": "Category updated successfully", "category": category.to_document()}

    @app.delete("/api/categories/{category_id}")
    def delete_category(category_id: str):
        removed = store.delete_category(category_id)
        return {
            "message": "Category and all related translation keys deleted successfully",
            "deletedKeys": removed,
        }

    # --- translation keys ------------------------------------------------

    @app.get("/api/keys")
    def list_keys(project_id: str = Query(..., alias="projectId"),
                  category_id: Optional[str] = Query(None, alias="categoryId")):
        store.get_project(project_id)
        keys = store.list_keys(project_id, category_id)
        return {"keys": [translation_key.to_document() for translation_key in keys]}

    @app.post("/api/keys", status_code=status.HTTP_201_CREATED)
    async def create_key(body: KeyCreate):
        translation_key = await service.create_key(
            body.project_id, body.category_id, body.key, body.value_type, body.value, body.description
        )
        return {"message": "Translation key created successfully", "key": translation_key.to_document()}

    @app.put("/api/keys/{key_id}")
    async def update_key(key_id: str, body: KeyUpdate):
        translation_key = await service.update_key(
            key_id, body.key, body.value_type, body.value,
            category_id=body.category_id, description=body.description,
        )
        return {"message": "Translation key updated successfully", "key": translation_key.to_document()}

    @app.delete("/api/keys/{key_id}")
    def delete_key(key_id: str):
        store.delete_key(key_id)
        return {"message": "Translation key deleted successfully"}

    # --- translation and analysis ---------------------------------------

    @app.post("/api/translate")
    async def translate(body: TranslateRequest):
        if not body.text.strip():
            raise InvalidArgumentError("Text, source language and target language are required")
        translated_text = await translator.translate_text(body.text, body.target_language, body.context)
        return {
            "translatedText": translated_text,
            "sourceLanguage": body.source_language,
            "targetLanguage": body.target_language,
        }

    @app.post("/api/analyze-translations")
    async def analyze_translations(body: AnalysisRequest):
        if not body.file_content.strip():
            raise InvalidArgumentError("File content is required")
        extracted = await extractor.analyze(
            body.file_content, body.file_name, body.project_languages, body.main_language
        )
        return {
            "keys": [item.to_document() for item in extracted],
            "message": f"Successfully analyzed {body.file_name} and found {len(extracted)} translation keys",
        }

    # --- export ----------------------------------------------------------

    @app.get("/api/export")
    def export(project_id: str = Query(..., alias="projectId"),
               language: Optional[str] = Query(None),
               multi_file: bool = Query(False, alias="multiFile")):
        result = exporter.export(project_id, language=language or None, multi_file=multi_file)
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers={"Content-Disposition": content_disposition(result.filename)},
        )

    return app
