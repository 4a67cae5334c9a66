"""
Settings HTTP API for the Classworks front-end.
"""
from quart import Quart, jsonify, request

from config import VERSION
from logging_config import get_logger
from settings import SettingsManager

logger = get_logger(__name__)


def create_app(manager: SettingsManager) -> Quart:
    """Build the Quart app serving the given settings manager."""
    app = Quart(__name__)
    app.config['SERVER_NAME'] = None
    app.config['SETTINGS_MANAGER'] = manager

    @app.route("/api/health", methods=['GET'])
    async def health():
        return jsonify({"status": "ok", "version": VERSION})

    @app.route("/api/settings", methods=['GET'])
    async def api_get_settings():
        if request.args.get("format") == "tree":
            return jsonify(manager.export_tree())
        return jsonify(manager.export_all())

    @app.route("/api/settings/definitions", methods=['GET'])
    async def api_get_definitions():
        result = {}
        for key, definition in manager.definitions.items():
            result[key] = {
                "type": definition.type.value,
                "default": definition.default,
                "description": definition.description,
                "icon": definition.icon,
                "requires_developer": definition.requires_developer,
                "has_validator": definition.validate is not None,
            }
        return jsonify(result)

    @app.route("/api/settings/reset", methods=['POST'])
    async def api_reset_all_settings():
        manager.reset_all()
        return jsonify({"success": True})

    @app.route("/api/settings/reload", methods=['POST'])
    async def api_reload_settings():
        """Re-read settings from storage, e.g. after editing the file by hand."""
        manager.reload()
        return jsonify({"success": True, "message": "Settings reloaded"})

    @app.route("/api/settings/<key>", methods=['GET'])
    async def api_get_setting(key: str):
        if manager.get_definition(key) is None:
            return jsonify({"error": f"Unknown setting: {key}"}), 404
        return jsonify({"key": key, "value": manager.get(key)})

    @app.route("/api/settings/<key>", methods=['POST'])
    async def api_update_setting(key: str):
        data = await request.get_json(silent=True)
        if not isinstance(data, dict) or 'value' not in data:
            return jsonify({"success": False, "error": "No value"}), 400
        if not manager.set(key, data['value']):
            return jsonify({"success": False, "error": f"Rejected value for {key}"}), 400
        return jsonify({"success": True, "value": manager.get(key)})

    @app.route("/api/settings/<key>", methods=['DELETE'])
    async def api_reset_setting(key: str):
        if manager.get_definition(key) is None:
            return jsonify({"error": f"Unknown setting: {key}"}), 404
        manager.reset(key)
        return jsonify({"success": True, "value": manager.get(key)})

    return app
