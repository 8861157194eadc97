"""Flask JSON API for Walkthrough Studio.

The acting user is taken from request headers on every call:
``X-Actor-Role``, ``X-Organization-Id`` and ``X-Actor-Id``.
"""

import base64
import binascii
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from ..config import Config
from ..core.document_store import DocumentStore
from ..core.errors import ParseError, StoreError
from ..core.models import ActorContext, DocumentSource, DocumentStatus, Role
from ..core.sqlite_store import SqliteDocumentStore
from ..core.validator import validate
from ..parsers import (
    ImportFormat, available_formats, format_for_filename, is_spreadsheet_available, parse_source,
)
from ..services.exchange import export_document, export_filename, export_json
from ..services.preview import build_preview, render_preview_html
from ..services.workflow import FailureReason, WalkthroughWorkflow, WorkflowResult

logger = logging.getLogger(__name__)

HTTP_STATUS = {
    FailureReason.NOT_FOUND: 404,
    FailureReason.FORBIDDEN: 403,
    FailureReason.INVALID_STATE: 409,
    FailureReason.CONFLICT: 409,
    FailureReason.INVALID: 422,
    FailureReason.PARSE: 400,
}

# URL action -> workflow method
ACTIONS = {
    'submit': 'submit',
    'resubmit': 'resubmit',
    'approve': 'approve',
    'publish': 'publish',
    'approve-and-publish': 'approve_and_publish',
    'request-changes': 'request_changes',
    'reject': 'reject',
}


class RequestError(Exception):
    pass


def _actor() -> ActorContext:
    role = (request.headers.get('X-Actor-Role') or '').strip().lower()
    try:
        parsed = Role(role)
    except ValueError:
        raise RequestError('Missing or unknown X-Actor-Role header')
    return ActorContext(
        role=parsed,
        organization_id=request.headers.get('X-Organization-Id') or None,
        actor_id=request.headers.get('X-Actor-Id') or None,
    )


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _revision(data: dict) -> Optional[int]:
    value = data.get('revision', request.args.get('revision'))
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RequestError(f'Invalid revision: {value!r}')


def _respond(result: WorkflowResult, created: bool = False):
    if result.ok:
        return jsonify(result.to_dict()), 201 if created else 200
    return jsonify({**result.to_dict(), 'error': '; '.join(result.problems)}), HTTP_STATUS[result.reason]


def _import_payload():
    """Return (format, payload, metadata) from a multipart upload or a JSON body."""
    upload = request.files.get('file')
    if upload is not None:
        meta = request.form
        fmt = meta.get('format') or format_for_filename(upload.filename)
        payload = upload.read()
    else:
        meta = _body()
        fmt = meta.get('format')
        if meta.get('contentBase64'):
            try:
                payload = base64.b64decode(meta['contentBase64'], validate=True)
            except (binascii.Error, ValueError):
                raise RequestError('contentBase64 is not valid base64')
        else:
            payload = meta.get('content')
    if not fmt:
        raise RequestError('Please provide a format')
    try:
        fmt = ImportFormat.from_value(fmt)
    except ValueError:
        raise RequestError(f'Unsupported format: {fmt}')
    if payload is None or payload == '' or payload == b'':
        raise RequestError('Please provide content to import')
    return fmt, payload, meta


def create_app(store: Optional[DocumentStore] = None) -> Flask:
    """Application factory. Defaults to the SQLite store at ``Config.DB_PATH``."""
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = Config.MAX_IMPORT_BYTES * 2
    workflow = WalkthroughWorkflow(store or SqliteDocumentStore(Config.DB_PATH))
    app.extensions['walkthrough_workflow'] = workflow

    @app.errorhandler(RequestError)
    def handle_bad_request(exc):
        return jsonify({'error': str(exc)}), 400

    @app.errorhandler(StoreError)
    def handle_store_error(exc):
        logger.warning("Store failure on %s %s: %s", request.method, request.path, exc)
        return jsonify({'error': str(exc), 'retryable': exc.retryable}), 503

    @app.route('/api/capabilities')
    def api_capabilities():
        return jsonify({
            'formats': [f.value for f in available_formats()],
            'spreadsheet': is_spreadsheet_available(),
            'statuses': [s.value for s in DocumentStatus],
            'maxImportBytes': workflow.max_import_bytes,
        })

    @app.route('/api/parse', methods=['POST'])
    def api_parse():
        """Parse without storing; returns the preview."""
        fmt, payload, meta = _import_payload()
        try:
            raw = parse_source(fmt, payload, label=meta.get('label'),
                               class_code=meta.get('classCode'))
        except ParseError as e:
            return jsonify({'error': str(e), 'format': fmt.value}), 400
        return jsonify({'success': True, 'preview': build_preview(raw).to_dict()})

    @app.route('/api/validate', methods=['POST'])
    def api_validate():
        data = _body()
        script = data.get('script', data.get('sections'))
        return jsonify(validate(script).to_dict())

    @app.route('/api/walkthroughs', methods=['GET'])
    def api_list():
        args = request.args
        try:
            status = DocumentStatus(args['status']) if args.get('status') else None
            source = DocumentSource(args['source']) if args.get('source') else None
        except ValueError as e:
            raise RequestError(str(e))
        docs = workflow.list_documents(
            _actor(), status=status, token=args.get('class'), source=source,
            search=args.get('search'), sort=args.get('sort', 'updated_at'),
            descending=args.get('order', 'desc') != 'asc',
        )
        return jsonify({'walkthroughs': [d.to_dict() for d in docs]})

    @app.route('/api/walkthroughs', methods=['POST'])
    def api_create():
        data = _body()
        result = workflow.create_blank(
            _actor(), data.get('classCode'), label=data.get('label'),
            organization_id=data.get('organizationId'),
        )
        return _respond(result, created=True)

    @app.route('/api/walkthroughs/import', methods=['POST'])
    def api_import():
        actor = _actor()
        fmt, payload, meta = _import_payload()
        result = workflow.import_source(
            actor, fmt, payload, class_code=meta.get('classCode'), label=meta.get('label'),
            organization_id=meta.get('organizationId'),
        )
        return _respond(result, created=True)

    @app.route('/api/walkthroughs/<document_id>', methods=['GET'])
    def api_get(document_id):
        return _respond(workflow.get(_actor(), document_id))

    @app.route('/api/walkthroughs/<document_id>', methods=['PUT'])
    def api_save(document_id):
        data = _body()
        script = data.get('script', data.get('sections'))
        result = workflow.save_draft(
            _actor(), document_id, script=script, label=data.get('label'),
            expected_revision=_revision(data),
        )
        return _respond(result)

    @app.route('/api/walkthroughs/<document_id>', methods=['DELETE'])
    def api_delete(document_id):
        return _respond(workflow.delete(_actor(), document_id, expected_revision=_revision({})))

    @app.route('/api/walkthroughs/<document_id>/duplicate', methods=['POST'])
    def api_duplicate(document_id):
        data = _body()
        result = workflow.duplicate(_actor(), document_id, label=data.get('label'),
                                    organization_id=data.get('organizationId'))
        return _respond(result, created=True)

    @app.route('/api/walkthroughs/<document_id>/<action>', methods=['POST'])
    def api_transition(document_id, action):
        if action not in ACTIONS:
            return jsonify({'error': f'Unknown action: {action}'}), 404
        data = _body()
        actor = _actor()
        method = getattr(workflow, ACTIONS[action])
        kwargs = {'expected_revision': _revision(data)}
        if action == 'request-changes':
            kwargs['note'] = data.get('note') or ''
        elif action == 'reject':
            kwargs['note'] = data.get('note')
        return _respond(method(actor, document_id, **kwargs))

    @app.route('/api/walkthroughs/<document_id>/export', methods=['GET'])
    def api_export(document_id):
        result = workflow.export(_actor(), document_id)
        if not result.ok:
            return _respond(result)
        return Response(
            export_json(result.document),
            mimetype='application/json',
            headers={'Content-Disposition': f'attachment; filename="{export_filename(result.document)}"'},
        )

    @app.route('/api/walkthroughs/<document_id>/preview', methods=['GET'])
    def api_preview(document_id):
        result = workflow.get(_actor(), document_id)
        if not result.ok:
            return _respond(result)
        preview = build_preview(result.document)
        if request.args.get('format') == 'json':
            return jsonify(preview.to_dict())
        return Response(render_preview_html(preview), mimetype='text/html')

    @app.route('/api/walkthroughs/<document_id>/history', methods=['GET'])
    def api_history(document_id):
        actor = _actor()
        found = workflow.get(actor, document_id)
        if not found.ok:
            return _respond(found)
        return jsonify({'events': [e.to_dict() for e in workflow.history(actor, document_id)]})

    @app.route('/api/published/<class_code>', methods=['GET'])
    def api_published(class_code):
        org = request.headers.get('X-Organization-Id') or request.args.get('org') or None
        doc = workflow.resolve_published(org, class_code)
        if doc is None:
            return jsonify({'error': f'No published walkthrough for {class_code}'}), 404
        return jsonify({'walkthrough': doc.to_dict(), 'exchange': export_document(doc)})

    return app
