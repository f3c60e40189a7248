"""
API Routes - Facility Visitor Management System

JSON endpoints used by the check-in kiosks and the admin dashboard.
Errors raised by the managers are turned into JSON responses by the error
handlers registered in ``app.create_app``.
"""

import io
import logging
import os
import tempfile

from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.utils import secure_filename

from visitor_management.modules.errors import ValidationError

api_bp = Blueprint('api', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def get_system():
    """The VisitorSystem attached to the running application."""
    return current_app.extensions['visitor_system']


def allowed_import_file(filename):
    allowed = current_app.config.get('ALLOWED_IMPORT_EXTENSIONS', {'csv'})
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed


@api_bp.route('/checkin', methods=['POST'])
def checkin():
    """Kiosk check-in, or completion after the contractor training form"""
    data = request.get_json(silent=True)
    result = get_system().checkin_service.check_in(data)
    return jsonify(result)


@api_bp.route('/checkout', methods=['POST'])
def checkout():
    """Kiosk check-out"""
    data = request.get_json(silent=True) or {}
    result = get_system().checkin_service.check_out(data.get('visitor_id'))
    return jsonify(result)


@api_bp.route('/current', methods=['GET'])
def current_visitors():
    """Visitors currently on site"""
    visitors = get_system().visit_tracker.list_currently_present()
    return jsonify({
        'success': True,
        'visitors': visitors,
        'count': len(visitors)
    })


@api_bp.route('/recent', methods=['GET'])
def recent_visits():
    """Recent visit history"""
    limit = request.args.get('limit', type=int)
    visits = get_system().visit_tracker.get_visit_history(limit)
    return jsonify({
        'success': True,
        'visits': visits,
        'count': len(visits)
    })


@api_bp.route('/stats', methods=['GET'])
def stats():
    """Dashboard statistics"""
    statistics = get_system().visit_tracker.get_visit_statistics()
    return jsonify({'success': True, **statistics})


@api_bp.route('/search-visitors', methods=['GET'])
def search_visitors():
    """Autocomplete search for returning visitors"""
    query = request.args.get('q', '')
    limit = request.args.get('limit', type=int)
    visitors = get_system().search_ranker.search(query, limit)
    return jsonify({
        'success': True,
        'visitors': visitors
    })


@api_bp.route('/training/import', methods=['POST'])
def training_import():
    """Bulk CSV import of training dates, or a single training date update"""
    system = get_system()

    if request.form.get('action') == 'update_single':
        visitor_id = request.form.get('visitor_id', type=int)
        training_date = (request.form.get('training_date') or '').strip()

        if not visitor_id or not training_date:
            raise ValidationError('Missing visitor ID or training date')

        visitor = system.compliance_calculator.set_training_date(visitor_id, training_date)
        return jsonify({
            'success': True,
            'message': 'Training date updated successfully',
            'visitor': visitor.to_dict()
        })

    upload = request.files.get('training_csv')
    if upload is None or not upload.filename:
        raise ValidationError('No file uploaded')

    filename = secure_filename(upload.filename)
    if not allowed_import_file(filename):
        raise ValidationError('Invalid file type. Please upload a CSV file')

    summary = system.import_reconciler.import_training_csv(upload.read())
    logger.info(f"Training import from {filename}: {summary.imported_count} imported, {summary.error_count} errors")
    return jsonify(summary.to_dict())


@api_bp.route('/training/alerts', methods=['GET'])
def training_alerts():
    """Expired and soon-to-expire contractor training"""
    alerts = get_system().compliance_calculator.get_training_alerts()
    return jsonify({'success': True, **alerts})


@api_bp.route('/training/roster', methods=['GET'])
def training_roster():
    """Recently active contractors and visitors with training status"""
    months = request.args.get('months', default=24, type=int)
    roster = get_system().compliance_calculator.get_training_roster(active_within_months=max(1, months))
    return jsonify({'success': True, **roster})


@api_bp.route('/export', methods=['GET'])
def export_visits():
    """Visit history download (CSV by default, format=excel for xlsx); save=1 keeps a copy on the server"""
    output_format = request.args.get('format', 'csv')
    generator = get_system().report_generator

    if request.args.get('save', '').lower() in ('1', 'true', 'yes'):
        saved = generator.save_report(output_format)
        return jsonify(saved)

    report = generator.generate_visit_report(output_format)

    return send_file(
        io.BytesIO(report['content']),
        mimetype=report['mimetype'],
        as_attachment=True,
        download_name=report['filename']
    )


@api_bp.route('/db-stats', methods=['GET'])
def database_statistics():
    """Database size, record counts and activity for the admin dashboard"""
    statistics = get_system().visit_tracker.get_database_statistics()
    return jsonify({'success': True, **statistics})


@api_bp.route('/backup', methods=['GET'])
def backup_database():
    """Download a consistent copy of the SQLite database"""
    system = get_system()
    timestamp = system.settings.now().strftime('%Y-%m-%d_%H-%M-%S')
    filename = f"visitor_database_backup_{timestamp}.db"

    with tempfile.TemporaryDirectory() as backup_dir:
        backup_path = os.path.join(backup_dir, filename)
        system.db_manager.backup_database(backup_path)
        with open(backup_path, 'rb') as f:
            content = f.read()

    logger.info(f"Database backup downloaded: {filename}")
    return send_file(
        io.BytesIO(content),
        mimetype='application/octet-stream',
        as_attachment=True,
        download_name=filename
    )


@api_bp.route('/visits/clear', methods=['POST'])
def clear_visits():
    """Delete all visit records (visitors and training data are kept)"""
    deleted = get_system().visit_tracker.clear_visit_history()
    return jsonify({
        'success': True,
        'deleted_count': deleted,
        'message': f"Successfully cleared {deleted} visit records"
    })


@api_bp.route('/purge', methods=['POST'])
def purge():
    """Run the retention purge now (still at most once per day)"""
    result = get_system().retention_purger.run_retention_purge()
    status = 500 if 'error' in result else 200
    return jsonify({'success': status == 200, **result}), status
