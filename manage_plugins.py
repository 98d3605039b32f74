#!/usr/bin/env python3
"""Plugin registry management CLI tool."""

import argparse
import asyncio
import json
import sys

from pydantic import ValidationError

from api.constants import PLUGIN_REGISTRY_FILE
from api.plugins.config import PluginConfig, PluginConfigService


def get_config() -> PluginConfigService:
    """Create a PluginConfigService instance."""
    return PluginConfigService(PLUGIN_REGISTRY_FILE)


def cmd_list(args):
    """List all configured plugins."""
    config = get_config()
    plugins = config.get_configs()

    if not plugins:
        print(f"No plugins configured in {PLUGIN_REGISTRY_FILE}.")
        return

    print(f"{'ID':<20} {'Enabled':<8} {'Auth':<6} {'URL'}")
    print("-" * 80)

    for p in plugins:
        enabled = "Yes" if p.enabled else "No"
        auth = "key" if p.api_key else "-"
        print(f"{p.id:<20} {enabled:<8} {auth:<6} {p.url}")


def cmd_info(args):
    """Show one plugin's registry entry."""
    config = get_config()
    plugin = config.get(args.plugin_id)
    if not plugin:
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)
    print(json.dumps(plugin.to_dict(), indent=2, ensure_ascii=False))


def cmd_add(args):
    """Add a plugin, or replace the entry with the same id."""
    config = get_config()
    try:
        plugin = PluginConfig(
            id=args.plugin_id,
            url=args.url,
            enabled=not args.disabled,
            api_key=args.api_key,
            display_name=args.name,
        )
    except ValidationError as e:
        print(f"Invalid plugin entry: {e}")
        sys.exit(1)

    replaced = config.get(args.plugin_id) is not None
    config.upsert(plugin)
    action = "updated" if replaced else "added"
    print(f"Plugin '{args.plugin_id}' {action}. Reload the service (POST /api/plugins/reload) to take effect.")


def cmd_remove(args):
    """Remove a plugin."""
    config = get_config()
    if not config.remove(args.plugin_id):
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)
    print(f"Plugin '{args.plugin_id}' removed.")


def cmd_enable(args):
    """Enable a plugin."""
    config = get_config()
    if not config.enable(args.plugin_id):
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)
    print(f"Plugin '{args.plugin_id}' enabled. Reload the service to take effect.")


def cmd_disable(args):
    """Disable a plugin."""
    config = get_config()
    if not config.disable(args.plugin_id):
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)
    print(f"Plugin '{args.plugin_id}' disabled. Reload the service to take effect.")


async def _load_report(configs):
    from api.plugins.registry import PluginRegistry

    registry = PluginRegistry()
    result = await registry.load(configs)
    return registry, result


def cmd_doctor(args):
    """Fetch every enabled manifest and report what would load."""
    if not PLUGIN_REGISTRY_FILE.exists():
        print(f"Plugin registry missing: {PLUGIN_REGISTRY_FILE}")
        sys.exit(1)
    try:
        with open(PLUGIN_REGISTRY_FILE, encoding="utf-8") as f:
            json.load(f)
    except json.JSONDecodeError as e:
        print(f"Plugin registry has invalid JSON: {e}")
        sys.exit(1)

    config = get_config()
    registry, result = asyncio.run(_load_report(config.get_configs()))

    print(f"{'ID':<20} {'State':<9} {'Tools':>5} {'Widgets':>7}  {'Error'}")
    print("-" * 80)
    for report in result.reports:
        error = report.error.message if report.error else ""
        print(
            f"{report.plugin_id:<20} {report.state.value:<9} "
            f"{report.tool_count:>5} {report.widget_count:>7}  {error}"
        )
    for collision in result.collisions:
        print(
            f"warning: tool '{collision.name}' from '{collision.plugin_id}' "
            f"overrides '{collision.replaced_plugin_id}'"
        )

    catalog = registry.get_catalog()
    if result.failed:
        print(f"\n{len(result.failed)} plugin(s) failed to load.")
        sys.exit(1)
    print(f"\nAll checks passed. {len(result.loaded)} plugin(s) loaded, {len(catalog.tools)} tool(s).")


def main():
    parser = argparse.ArgumentParser(description="Plugin Registry Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List configured plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show a plugin's registry entry")
    info_parser.add_argument("plugin_id", help="Plugin ID")

    # add
    add_parser = subparsers.add_parser("add", help="Add or replace a plugin")
    add_parser.add_argument("plugin_id", help="Plugin ID")
    add_parser.add_argument("url", help="Plugin base URL")
    add_parser.add_argument("--api-key", default=None, help="Bearer token sent to the plugin")
    add_parser.add_argument("--name", default=None, help="Display name override")
    add_parser.add_argument("--disabled", action="store_true", help="Add the plugin disabled")

    # remove
    remove_parser = subparsers.add_parser("remove", help="Remove a plugin")
    remove_parser.add_argument("plugin_id", help="Plugin ID")

    # enable
    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("plugin_id", help="Plugin ID")

    # disable
    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("plugin_id", help="Plugin ID")

    # doctor
    subparsers.add_parser("doctor", help="Fetch manifests and report load status")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "add": cmd_add,
        "remove": cmd_remove,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
