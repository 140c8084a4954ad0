"""Click command built from the registry of options and commands."""

from __future__ import annotations

from typing import Any

import click

from bcvi.core.config import Settings, get_settings
from bcvi.core.errors import BcviError
from bcvi.core.logging import setup_logging
from bcvi.plugins.manager import PluginManager
from bcvi.plugins.registry import Registry, RegistryBuilder
from bcvi.plugins.types import ArgSpec, OptionDescriptor


class BcviCommand(click.Command):
    """Adds option details and the command list to --help."""

    def __init__(self, registry: Registry, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.registry = registry

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        with formatter.section("Option details"):
            for option in self.registry.options:
                formatter.write(f"{formatter.current_indent * ' '}--{option.name}\n")
                formatter.write(f"{(formatter.current_indent + 4) * ' '}{option.description}\n")
        with formatter.section("Back-channel commands"):
            formatter.write_dl([(c.name, c.description) for c in self.registry.commands])
        super().format_epilog(ctx, formatter)


def _param_name(option: OptionDescriptor) -> str:
    return option.name.replace("-", "_")


def _make_param(option: OptionDescriptor) -> click.Option:
    decls = [_param_name(option), f"--{option.name}"]
    if option.alias:
        decls.append(f"-{option.alias}")
    if not option.takes_value:
        return click.Option(decls, is_flag=True, default=False, help=option.summary)
    return click.Option(
        decls,
        type=int if option.arg_spec is ArgSpec.INT else str,
        metavar=option.arg_name or None,
        help=option.summary,
    )


def load_registry(settings: Settings) -> Registry:
    """Run the load phase: defaults, then plugins from the config directory."""
    builder = RegistryBuilder()
    PluginManager(settings.plugins_dir, builder).discover_and_load()
    return builder.build()


def build_cli(registry: Registry, settings: Settings) -> click.Command:
    def callback(**values: Any) -> None:
        ctx = click.get_current_context()
        args = list(values.pop("args", ()))
        options = {o.name: values.get(_param_name(o)) for o in registry.options}
        try:
            client = registry.new_client(settings, options, args)
            for option in registry.options:
                value = options.get(option.name)
                if option.dispatch_to is None or value is None:
                    continue
                if not option.takes_value and not value:
                    continue
                method = getattr(client, option.dispatch_to, None)
                if method is None:
                    raise BcviError(f"--{option.name}: client has no method {option.dispatch_to}()")
                result = method()
                ctx.exit(result if isinstance(result, int) else 0)
            ctx.exit(client.run())
        except BcviError as e:
            click.echo(f"bcvi: {e}", err=True)
            ctx.exit(1)

    params: list[click.Parameter] = [_make_param(o) for o in registry.options]
    params.append(click.Argument(["args"], nargs=-1))
    return BcviCommand(
        registry,
        name="bcvi",
        callback=callback,
        params=params,
        help="Send FILES (or other arguments) back to the listener on your workstation.",
        context_settings={"max_content_width": 120},
    )


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    try:
        registry = load_registry(settings)
    except BcviError as e:
        click.echo(f"bcvi: {e}", err=True)
        raise SystemExit(1)
    build_cli(registry, settings).main(args=argv, prog_name="bcvi")


if __name__ == "__main__":
    main()
