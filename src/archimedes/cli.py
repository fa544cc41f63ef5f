# -*- coding: utf-8 -*-
"""
Archimedes 插件管理命令行接口
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .exceptions import ArchimedesError, MalformedManifestError
from .plugins.config.registry_config import RegistryConfig
from .plugins.lifecycle.plugin_registry import PluginRegistry
from .plugins.sources.manifest_source import load_manifest_file


def _load_config(args: argparse.Namespace) -> RegistryConfig:
    config = RegistryConfig.from_file(Path(args.config)) if args.config else RegistryConfig()
    if args.log_level:
        config.log_level = args.log_level
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _load_registry(config: RegistryConfig, organization_id: Optional[int]) -> PluginRegistry:
    """发现并激活全部有效插件"""
    registry = PluginRegistry.from_config(config)
    if registry.manifest_source is not None:
        registry.discover()
        if organization_id is not None:
            registry.discover(organization_id)
    registry.activate_all(organization_id)
    return registry


def _cmd_validate(args: argparse.Namespace, config: RegistryConfig) -> int:
    registry = PluginRegistry.from_config(config)
    failed = 0

    for path in args.files:
        try:
            raw = load_manifest_file(Path(path))
        except (FileNotFoundError, MalformedManifestError) as e:
            print(f"{path}: {e}")
            failed += 1
            continue

        record = registry.install(raw, organization_id=args.org)
        if record.is_valid:
            print(f"{path}: ok ({record.plugin_id})")
        else:
            failed += 1
            print(f"{path}: invalid")
            for key, message in record.validation.errors.items():
                print(f"  {key}: {message}")
        for key, message in record.validation.warnings.items():
            print(f"  warning {key}: {message}")

    return 1 if failed else 0


def _cmd_slots(args: argparse.Namespace, config: RegistryConfig) -> int:
    registry = _load_registry(config, args.org)
    for binding in registry.slots(args.org).bindings(args.slot):
        print(f"{binding.priority:>5}  {binding.plugin_id:<30} {binding.component}")
    return 0


def _cmd_fields(args: argparse.Namespace, config: RegistryConfig) -> int:
    registry = _load_registry(config, args.org)
    for name, field in registry.merge_for_model(args.model, args.org).items():
        print(f"{name:<30} {field.type.value:<10} {field.owner_plugin_id}")
    return 0


def _cmd_stats(args: argparse.Namespace, config: RegistryConfig) -> int:
    registry = _load_registry(config, None)
    print(json.dumps(registry.statistics(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", help="YAML/JSON 配置文件路径")
    common.add_argument("--log-level", help="日志级别，覆盖配置文件")

    parser = argparse.ArgumentParser(
        prog="archimedes-plugins",
        description="Archimedes 插件注册表管理工具",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", parents=[common], help="验证插件清单")
    validate.add_argument("files", nargs="+", help="清单文件")
    validate.add_argument("--org", type=int, help="按该组织的租户插件验证")
    validate.set_defaults(handler=_cmd_validate)

    slots = subparsers.add_parser("slots", parents=[common], help="列出插槽中的组件")
    slots.add_argument("slot", help="插槽名称")
    slots.add_argument("--org", type=int, help="组织ID")
    slots.set_defaults(handler=_cmd_slots)

    fields = subparsers.add_parser("fields", parents=[common], help="列出模型的自定义字段")
    fields.add_argument("model", help="模型名称")
    fields.add_argument("--org", type=int, help="组织ID")
    fields.set_defaults(handler=_cmd_fields)

    stats = subparsers.add_parser("stats", parents=[common], help="注册表统计")
    stats.set_defaults(handler=_cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """命令行主入口"""
    args = build_parser().parse_args(argv)

    try:
        config = _load_config(args)
        return args.handler(args, config)
    except (ArchimedesError, ValueError) as e:
        print(f"运行失败: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
