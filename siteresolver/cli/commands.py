"""
CLI commands for the Official Website Resolver (Click implementation).
"""

import asyncio
import json
import sys
from typing import List, Optional

import click
import yaml

from siteresolver.core.config import Config, DiscoverySettings
from siteresolver.core.exceptions import ConfigurationError
from siteresolver.core.models import BusinessRecord, DiscoveryResult, DiscoveryStatus, Evaluation
from siteresolver.core.modes import DiscoveryMode
from siteresolver.discovery.fetcher import HttpPageFetcher, SessionPool
from siteresolver.discovery.orchestrator import DiscoveryOrchestrator
from siteresolver.discovery.reachability import DnsReachabilityChecker
from siteresolver.generation.generator import CandidateGenerator
from siteresolver.normalization.identity import is_valid_tax_id_checksum, normalize_tax_id
from siteresolver.search.client import DuckDuckGoClient, DuckDuckGoSearchProvider
from siteresolver.utils.logging_config import setup_logging

STATUS_COLORS = {
    DiscoveryStatus.FOUND_VALID: 'green',
    DiscoveryStatus.FOUND_INVALID: 'yellow',
    DiscoveryStatus.NOT_FOUND: 'yellow',
    DiscoveryStatus.ERROR: 'red',
}


def record_options(func):
    """Business record options shared by discover and verify."""
    options = [
        click.option('--name', '-n', required=True, help='Business name'),
        click.option('--city', help='City'),
        click.option('--province', help='Province (2-letter code or full name)'),
        click.option('--address', help='Street address'),
        click.option('--phone', help='Phone number'),
        click.option('--tax-id', 'tax_id', help='11-digit tax ID (P.IVA)'),
        click.option('--category', help='Business category / sector'),
        click.option('--email', help='Business e-mail'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _record_from_options(**fields: Optional[str]) -> BusinessRecord:
    try:
        return BusinessRecord.from_dict(fields)
    except ValueError as e:
        raise click.BadParameter(str(e))


def load_config(ctx: click.Context) -> Config:
    """Load and validate the configuration, then set up logging."""
    obj = ctx.obj or {}
    try:
        config = Config(obj.get('config_path', 'config/config.yaml'))
        config.validate()
    except ConfigurationError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        sys.exit(1)

    logging_config = dict(config.logging_config)
    if obj.get('verbose'):
        logging_config['level'] = 'DEBUG'
    setup_logging(logging_config)
    return config


def build_orchestrator(config: Config, pool: SessionPool) -> DiscoveryOrchestrator:
    """Wire the concrete collaborators described by the configuration."""
    settings = DiscoverySettings.from_config(config)
    fetcher = HttpPageFetcher(pool)

    providers = []
    search = config.search_config
    if search.get('enabled', True):
        client = DuckDuckGoClient(
            api_key=search.get('api_key'),
            rate_limit=search.get('rate_limit', 4.5),
            max_retries=search.get('max_retries', 3),
            base_delay=search.get('retry_delay', 1.0),
            timeout=search.get('timeout', 30),
            base_url=search.get('base_url', 'https://duckduckgo8.p.rapidapi.com'),
        )
        providers.append(DuckDuckGoSearchProvider(client, max_results=settings.results_per_query))

    reachability = DnsReachabilityChecker(fetcher, timeout=config.get('fetcher.dns_timeout', 3.0))
    return DiscoveryOrchestrator(fetcher, providers, reachability=reachability, settings=settings)


def _evaluation_lines(evaluation: Evaluation) -> List[str]:
    lines = [f"  Confidence: {evaluation.confidence:.2f}"]
    if evaluation.reason:
        lines.append(f"  Reason:     {evaluation.reason}")
    if evaluation.matched_tax_id:
        lines.append(f"  Tax ID:     {evaluation.matched_tax_id}")
    if evaluation.matched_phone:
        lines.append(f"  Phone:      {evaluation.matched_phone}")
    if evaluation.rejection:
        lines.append(f"  Rejection:  {evaluation.rejection.value}")
    return lines


def _print_result(result: DiscoveryResult) -> None:
    status = click.style(result.status.value, fg=STATUS_COLORS[result.status], bold=True)
    click.echo(f"{status}: {result.url or '-'}")
    click.echo(f"  Layer:      {result.layer} ({result.method})")
    click.echo(f"  Confidence: {result.confidence:.2f}")
    if result.reason_code:
        click.echo(f"  Code:       {result.reason_code.value}")
    if result.evaluation is not None and result.evaluation.reason:
        click.echo(f"  Reason:     {result.evaluation.reason}")
    if result.error:
        click.echo(f"  Error:      {result.error}")


@click.command()
@record_options
@click.option('--existing-url', 'existing_url', help='Previously known (unverified) website')
@click.option('--mode', '-m', default=None,
              type=click.Choice([m.value for m in DiscoveryMode], case_sensitive=False),
              help='Discovery mode (default from configuration)')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def discover(ctx: click.Context, mode: Optional[str], as_json: bool, **fields: Optional[str]):
    """Discover the official website of a business."""
    record = _record_from_options(**fields)
    config = load_config(ctx)
    mode = mode or config.get('discovery.default_mode', DiscoveryMode.DEEP.value)

    async def run() -> DiscoveryResult:
        async with SessionPool(timeout=config.get('fetcher.timeout', 15)) as pool:
            orchestrator = build_orchestrator(config, pool)
            return await orchestrator.discover(record, mode)

    result = asyncio.run(run())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_result(result)

    if result.status == DiscoveryStatus.ERROR:
        sys.exit(1)


@click.command()
@click.option('--url', '-u', required=True, help='Candidate URL to verify')
@record_options
@click.option('--json', 'as_json', is_flag=True, help='Print the evaluation as JSON')
@click.pass_context
def verify(ctx: click.Context, url: str, as_json: bool, **fields: Optional[str]):
    """Verify a candidate URL against a business record."""
    record = _record_from_options(**fields)
    config = load_config(ctx)

    async def run() -> Evaluation:
        async with SessionPool(timeout=config.get('fetcher.timeout', 15)) as pool:
            orchestrator = build_orchestrator(config, pool)
            return await orchestrator.verify(url, record)

    evaluation = asyncio.run(run())
    tax_id = normalize_tax_id(record.tax_id)

    if as_json:
        data = evaluation.to_dict()
        data['tax_id_checksum_valid'] = is_valid_tax_id_checksum(tax_id) if tax_id else None
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    click.echo(f"Verification of {evaluation.final_url or url}:")
    for line in _evaluation_lines(evaluation):
        click.echo(line)
    if tax_id:
        if is_valid_tax_id_checksum(tax_id):
            click.echo(f"  P.IVA {tax_id}: checksum valid")
        else:
            click.echo(click.style(f"  ⚠️  P.IVA {tax_id}: checksum invalid", fg='yellow'))


@click.command()
@click.option('--name', '-n', required=True, help='Business name')
@click.option('--city', help='City')
@click.option('--province', help='Province')
@click.option('--category', help='Business category / sector')
@click.option('--limit', '-l', default=20, show_default=True, type=click.IntRange(1, 150),
              help='Number of URLs to print')
@click.option('--include-net', is_flag=True, help='Also generate .net domains')
@click.option('--json', 'as_json', is_flag=True, help='Print the URLs as a JSON list')
def generate(name: str, city: Optional[str], province: Optional[str], category: Optional[str],
             limit: int, include_net: bool, as_json: bool):
    """Generate ranked candidate URLs for a business name (no network access)."""
    generator = CandidateGenerator(include_net=include_net)
    urls = generator.generate(name, city, province, category)[:limit]

    if as_json:
        click.echo(json.dumps(urls, indent=2))
        return

    if not urls:
        click.echo("No candidates generated")
        return
    for position, url in enumerate(urls, 1):
        click.echo(f"{position:3d}. {url}")


@click.group('config')
def config_commands():
    """Configuration management commands."""
    pass


@config_commands.command('show')
@click.pass_context
def config_show(ctx: click.Context):
    """Show current configuration (API keys masked)."""
    config = load_config(ctx)
    config_dict = config.get_all()
    search = dict(config_dict.get('search', {}))
    if search.get('api_key'):
        key = str(search['api_key'])
        search['api_key'] = f"{key[:4]}...{key[-2:]}"
    config_dict['search'] = search

    click.echo("Current Configuration:")
    click.echo(yaml.dump(config_dict, default_flow_style=False, sort_keys=False))


@config_commands.command('validate')
@click.pass_context
def config_validate(ctx: click.Context):
    """Validate configuration file."""
    path = (ctx.obj or {}).get('config_path', 'config/config.yaml')
    try:
        Config(path).validate()
    except ConfigurationError as e:
        click.echo(f"❌ Configuration validation failed: {e}", err=True)
        sys.exit(1)
    click.echo("✅ Configuration is valid")


@config_commands.command('example')
def config_example():
    """Show example configuration."""
    example_config = {
        'search': {
            'enabled': True,
            'provider': 'duckduckgo',
            'api_key': '${DUCKDUCKGO_API_KEY}',
            'rate_limit': 4.5,
            'timeout': 30,
            'max_retries': 3,
            'results_per_query': 5,
        },
        'discovery': {
            'default_mode': 'DEEP',
            'thresholds': {'acceptance': 0.75, 'min_valid': 0.60, 'invalid_floor': 0.35},
            'verification_concurrency': 10,
            'call_timeout': 90,
            'llm': {'band': [0.20, 0.90], 'ceiling': 0.90},
        },
        'scoring': {'weights': {'phone': 0.65}},
        'cache': {'ttl_seconds': 900, 'max_entries': 2000},
        'rate_limit': {'min_delay': 1.5, 'max_delay': 30, 'max_wait': 10},
        'fetcher': {'timeout': 15, 'retries': 1, 'retry_backoff': 0.5},
        'filtering': {'blocklist': ['cylex.it']},
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'file': 'logs/site_resolver.log',
        },
    }

    click.echo("Example Configuration:")
    click.echo(yaml.dump(example_config, default_flow_style=False, sort_keys=False))
    click.echo("\nTo use this configuration:")
    click.echo("1. Save to config/config.yaml")
    click.echo("2. Set DUCKDUCKGO_API_KEY environment variable")
    click.echo("3. Adjust thresholds and weights as needed")
