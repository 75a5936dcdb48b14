"""
Slack Bot CLI

Command-line entry point for the pipeline notification bot.

Usage:
    slackbot [OPTIONS] COMMAND [ARGS]...

Commands:
    run      Watch pipeline activities and post to Slack
    check    Validate the configuration and print it
"""

import logging
import signal
import sys

import click
from dotenv import load_dotenv

from ..config import BotConfig
from ..errors import ConfigError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, quiet: bool = False):
    """Configure logging to output to stdout."""
    if quiet:
        level = logging.WARNING
    else:
        level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def load_config(ctx: click.Context) -> BotConfig:
    """Merge command-line overrides into the environment config and validate it."""
    config = BotConfig.from_env()
    for name, value in ctx.obj.items():
        if value is not None and hasattr(config, name):
            setattr(config, name, value)
    try:
        config.validate()
    except ConfigError as e:
        raise click.ClickException(str(e))
    return config


def resolve_dashboard_url(config: BotConfig, cluster_client) -> str:
    """Find the pipelines dashboard URL from its ingress when not configured."""
    if config.dashboard_url:
        return config.dashboard_url
    try:
        url = cluster_client.find_ingress_url(config.namespace, config.dashboard_ingress)
    except Exception as e:
        raise click.ClickException(
            f'failed to find dashboard ingress {config.dashboard_ingress} '
            f'in namespace {config.namespace}: {e}'
        )
    if not url:
        logger.warning('No dashboard ingress %s in namespace %s so cannot link to the dashboard',
                       config.dashboard_ingress, config.namespace)
    return url


@click.group()
@click.option('-n', '--namespace', default=None, help='Namespace to watch (default: $JX_NAMESPACE)')
@click.option('--channel', 'default_channel', default=None, help='Default Slack channel')
@click.option('--slack-url', default=None, help='Override the Slack API URL')
@click.option('--dashboard-url', default=None, help='Pipelines dashboard base URL')
@click.option('--source-config', 'source_config_path', default=None,
              type=click.Path(dir_okay=False), help='Source config YAML file')
@click.option('--workers', default=None, type=int, help='Number of worker threads')
@click.option('-v', '--verbose', is_flag=True, help='Verbose output (show DEBUG logs)')
@click.option('-q', '--quiet', is_flag=True, help='Quiet mode (only show warnings/errors)')
@click.pass_context
def cli(ctx, namespace, default_channel, slack_url, dashboard_url, source_config_path,
        workers, verbose, quiet):
    """Jenkins X pipeline notifications for Slack."""
    load_dotenv()
    setup_logging(verbose, quiet)

    ctx.ensure_object(dict)
    ctx.obj['namespace'] = namespace
    ctx.obj['default_channel'] = default_channel
    ctx.obj['slack_url'] = slack_url
    ctx.obj['dashboard_url'] = dashboard_url
    ctx.obj['source_config_path'] = source_config_path
    ctx.obj['workers'] = workers


@cli.command()
@click.pass_context
def run(ctx):
    """Watch pipeline activities and post their status to Slack."""
    from ..api.cluster import KubernetesClusterClient
    from ..api.slack import WebSlackClient
    from ..engine import WatchEngine
    from ..monitoring import init_sentry
    from ..source_config import SourceConfigs

    config = load_config(ctx)
    init_sentry(config)

    if config.slack_url:
        logger.info('Using slack URL %s', config.slack_url)
    slack_client = WebSlackClient(config.slack_token, config.slack_url, timeout=config.dispatch.timeout)

    try:
        source_configs = SourceConfigs.load(config.source_config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    try:
        cluster_client = KubernetesClusterClient()
    except Exception as e:
        raise click.ClickException(f'failed to create kubernetes client: {e}')

    config.dashboard_url = resolve_dashboard_url(config, cluster_client)
    if config.dashboard_url:
        logger.info('Using the dashboard URL %s', config.dashboard_url)

    engine = WatchEngine.from_config(config, slack_client, cluster_client, source_configs)

    def shutdown(signum, frame):
        logger.info('Received signal %d, shutting down', signum)
        engine.stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    engine.run()
    click.echo(f"Stopped. Handled events: {dict(engine.stats)}")


@cli.command()
@click.pass_context
def check(ctx):
    """Validate the configuration and print the resolved settings."""
    from ..source_config import SourceConfigs

    config = load_config(ctx)
    try:
        source_configs = SourceConfigs.load(config.source_config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    click.echo(f"Namespace:       {config.namespace}")
    click.echo(f"Default channel: {config.default_channel}")
    click.echo(f"Slack URL:       {config.slack_url or 'default'}")
    click.echo(f"Dashboard URL:   {config.dashboard_url or '(from ingress ' + config.dashboard_ingress + ')'}")
    click.echo(f"Source configs:  {len(source_configs)} repositories")
    click.echo(f"Workers:         {config.workers}")


if __name__ == '__main__':
    cli()
