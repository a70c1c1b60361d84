"""
Error Handling Middleware
Provides consistent JSON error responses for the admin API
"""
from flask import jsonify
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, IntegrityError
from werkzeug.exceptions import HTTPException

from sprkz.errors import ConfigurationError, DefinitionError, PersistenceError
from sprkz.infra.log import get_logger

logger = get_logger('sprkz.requests')


def error_response(error: str, message: str, status_code: int, **extra):
    body = {'error': error, 'message': message}
    body.update(extra)
    return jsonify(body), status_code


def register_error_handlers(app):
    """Register error handlers for the admin API"""

    @app.errorhandler(DefinitionError)
    def handle_definition_error(e):
        logger.warning(f"Rejected definition: {e}")
        return error_response('validation_error', str(e), 400, details=e.details)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        details = [
            {'field': '.'.join(str(part) for part in err['loc']), 'message': err['msg']}
            for err in e.errors()
        ]
        return error_response('validation_error', 'Invalid request data', 400, details=details)

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(e):
        return error_response('configuration_error', str(e), 409)

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        logger.error(f"Persistence failure: {e}")
        return error_response('database_error', 'Database operation failed. Please try again later.', 503)

    @app.errorhandler(OperationalError)
    def handle_operational_error(e):
        """Handle database operational errors (connection, table not found, etc.)"""
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)

        if 'does not exist' in error_msg or 'no such table' in error_msg:
            logger.error(f"Database table not found: {error_msg}")
            return error_response(
                'schema_not_ready',
                'Database tables are missing. Run the migrations first.',
                503)

        logger.error(f"Database operational error: {error_msg}")
        return error_response('database_error', 'Database operation failed. Please try again later.', 503)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        """Handle database integrity errors (foreign key, unique constraint)"""
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database integrity error: {error_msg}")

        if 'foreign key' in error_msg.lower():
            return error_response('invalid_reference', 'Referenced entity does not exist', 400)

        if 'unique' in error_msg.lower() or 'duplicate' in error_msg.lower():
            return error_response('duplicate_entry', 'This entry already exists', 409)

        return error_response('integrity_error', 'Data integrity constraint violated', 400)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return error_response(e.name.lower().replace(' ', '_'), e.description, e.code)
