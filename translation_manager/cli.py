"""
Command line entry point: serve the HTTP API, export a project, re-translate it,
audit it, or run key extraction on a source file.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

import uvicorn

from translation_manager.api import create_app
from translation_manager.app_config import AppConfig, load_app_config
from translation_manager.errors import TranslationManagerError
from translation_manager.exporter import Exporter
from translation_manager.key_extractor import KeyExtractor
from translation_manager.key_service import TranslationKeyService
from translation_manager.key_store import KeyStore
from translation_manager.translation_validator import audit_project
from translation_manager.translator import Translator

logger = logging.getLogger(__name__)


def build_translator(config: AppConfig) -> Translator:
    return Translator(
        config.openai_client,
        model_name=config.model_name,
        max_concurrent_api_calls=config.max_concurrent_api_calls,
        requests_per_minute=config.requests_per_minute,
        request_timeout=config.request_timeout,
        max_completion_tokens=config.max_completion_tokens,
        language_names=config.language_names,
    )


def run_serve(args, config: AppConfig) -> int:
    app = create_app(config)
    host = args.host or config.server_host
    port = args.port or config.server_port
    logger.info("Serving translation manager on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")
    return 0


def run_export(args, config: AppConfig) -> int:
    exporter = Exporter(KeyStore(config.store_file_path))
    result = exporter.export(args.project_id, language=args.language, multi_file=args.multi_file)
    output_dir = args.output_dir or os.getcwd()
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, result.filename)
    with open(output_path, 'wb') as f:
        f.write(result.content)
    logger.info("Wrote export to %s", output_path)
    print(output_path)
    return 0


def run_retranslate(args, config: AppConfig) -> int:
    translator = build_translator(config)
    if not translator.enabled:
        logger.warning("Translation is disabled; values will be reset to the source text.")
    service = TranslationKeyService(KeyStore(config.store_file_path), translator)
    changed = asyncio.run(service.retranslate_project(args.project_id, show_progress=True))
    print(f"Re-translated {changed} translation key(s).")
    return 0


def run_audit(args, config: AppConfig) -> int:
    issues = audit_project(KeyStore(config.store_file_path), args.project_id)
    for issue in issues:
        print(issue)
    return 1 if issues else 0


def run_extract(args, config: AppConfig) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        file_content = f.read()
    extractor = KeyExtractor(config.openai_client, model_name=config.analysis_model_name)
    extracted = asyncio.run(extractor.analyze(
        file_content, os.path.basename(args.file), args.languages, args.main_language
    ))
    print(json.dumps([item.to_document() for item in extracted], ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='translation-manager',
        description='Manage translation projects and export their keys as nested JSON.'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    p_serve = subparsers.add_parser('serve', help='Run the HTTP API.')
    p_serve.add_argument('--host', default=None, help='Bind address (defaults to server.host).')
    p_serve.add_argument('--port', type=int, default=None, help='Port (defaults to server.port).')
    p_serve.set_defaults(func=run_serve)

    p_export = subparsers.add_parser('export', help="Write a project's translations to disk.")
    p_export.add_argument('project_id', help='Project to export.')
    p_export.add_argument('--language', default=None, help='Export a single project language.')
    p_export.add_argument('--multi-file', action='store_true',
                          help='Write a ZIP archive with one <lang>.json per language.')
    p_export.add_argument('--output-dir', default=None, help='Directory for the export file.')
    p_export.set_defaults(func=run_export)

    p_retranslate = subparsers.add_parser('retranslate',
                                          help='Regenerate every non-source value of a project.')
    p_retranslate.add_argument('project_id', help='Project to re-translate.')
    p_retranslate.set_defaults(func=run_retranslate)

    p_audit = subparsers.add_parser('audit', help='Report missing languages and placeholder mismatches.')
    p_audit.add_argument('project_id', help='Project to audit.')
    p_audit.set_defaults(func=run_audit)

    p_extract = subparsers.add_parser('extract', help='Find translatable strings in a web source file.')
    p_extract.add_argument('file', help='Source file to analyze.')
    p_extract.add_argument('--main-language', default='en', help='Language of the strings in the file.')
    p_extract.add_argument('--languages', nargs='*', default=None, help='Languages of the target project.')
    p_extract.set_defaults(func=run_extract)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_app_config()
    try:
        return args.func(args, config)
    except TranslationManagerError as e:
        logger.error("%s: %s", e.kind.value, e.message)
        return 2


if __name__ == "__main__":
    sys.exit(main())
