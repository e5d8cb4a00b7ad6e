"""
Command-line interface for stop-list processing.
Provides commands for parsing/geocoding workbooks, saved uploads, export and optimization.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

import click

from .export import export_filename
from .parsing.workbook import LAYOUT_AUTO, LAYOUTS
from .service import StopListService


logger = logging.getLogger(__name__)


@click.group()
@click.option('--config', default='config/params.yaml', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def main(ctx, config: str, verbose: bool):
    """Stop-list parser and geocoder CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--layout', type=click.Choice(LAYOUTS),
              default=LAYOUT_AUTO, help='Workbook layout (default: detect)')
@click.option('--no-save', is_flag=True, help='Do not store the result as a saved upload')
@click.option('--output', help='Write the parsed routes as JSON to this file')
@click.pass_context
def process(ctx, input_file: str, layout: str, no_save: bool, output: str):
    """Parse and geocode a stop-list workbook."""

    async def _process():
        service = StopListService(ctx.obj['config_path'])

        try:
            file_path = Path(input_file)
            click.echo(f"Processing {file_path.name}...")
            result = await service.process_workbook(
                file_path.name, file_path.read_bytes(), layout=layout, save=not no_save
            )

            stats = result.get('geocodingStats') or {}
            click.echo(f"\nProcessing completed:")
            click.echo(f"  Routes: {result['totalRoutes']}")
            click.echo(f"  Deliveries: {result['totalDeliveries']}")
            click.echo(f"  Geocoded: {stats.get('succeeded', 0)}")
            click.echo(f"  Failed: {stats.get('failed', 0)}")
            click.echo(f"  Cache hits: {stats.get('cacheHits', 0)}")
            if result['uploadId']:
                click.echo(f"  Upload ID: {result['uploadId']}")

            if output:
                Path(output).write_text(json.dumps(result, indent=2))
                click.echo(f"\nRoutes written to {output}")

        except Exception as e:
            logger.error(f"Processing failed: {e}")
            raise click.ClickException(str(e))
        finally:
            await service.close()

    asyncio.run(_process())


@main.command()
@click.pass_context
def uploads(ctx):
    """List saved uploads, newest first."""

    async def _uploads():
        service = StopListService(ctx.obj['config_path'])

        try:
            saved = service.list_uploads()
            if not saved:
                click.echo("No saved uploads")
                return
            for upload in saved:
                click.echo(f"{upload['id']}  {upload['createdAt']}  {upload['fileName']}")
        except Exception as e:
            logger.error(f"Listing uploads failed: {e}")
            raise click.ClickException(str(e))
        finally:
            await service.close()

    asyncio.run(_uploads())


@main.command()
@click.argument('upload_id')
@click.pass_context
def show(ctx, upload_id: str):
    """Show the routes of a saved upload."""

    async def _show():
        service = StopListService(ctx.obj['config_path'])

        try:
            result = service.get_upload(upload_id)
            click.echo(f"{result['fileName']}: {result['totalRoutes']} routes, "
                       f"{result['totalDeliveries']} deliveries")
            click.echo("=" * 30)
            for route in result['routes']:
                deliveries = route['deliveries']
                geocoded = sum(
                    1 for d in deliveries
                    if d.get('geocode') and d['geocode'].get('success')
                )
                click.echo(f"  {route['routeId']} {route['driverName'] or '-'}: "
                           f"{len(deliveries)} stops, {geocoded} geocoded")
        except Exception as e:
            logger.error(f"Show failed: {e}")
            raise click.ClickException(str(e))
        finally:
            await service.close()

    asyncio.run(_show())


@main.command()
@click.argument('upload_id')
@click.pass_context
def delete(ctx, upload_id: str):
    """Delete a saved upload."""

    async def _delete():
        service = StopListService(ctx.obj['config_path'])

        try:
            if not service.delete_upload(upload_id):
                raise click.ClickException(f"Upload not found: {upload_id}")
            click.echo(f"Deleted upload {upload_id}")
        finally:
            await service.close()

    asyncio.run(_delete())


@main.command()
@click.argument('upload_id')
@click.option('--output', help='Output CSV file (default: stoplist-routes-<timestamp>.csv)')
@click.pass_context
def export(ctx, upload_id: str, output: str):
    """Export a saved upload as CSV."""

    async def _export():
        service = StopListService(ctx.obj['config_path'])

        try:
            csv_text = service.export_csv(upload_id)
            target = Path(output or export_filename())
            target.write_text(csv_text)
            click.echo(f"CSV written to {target}")
        except Exception as e:
            logger.error(f"Export failed: {e}")
            raise click.ClickException(str(e))
        finally:
            await service.close()

    asyncio.run(_export())


@main.command()
@click.argument('upload_id')
@click.option('--route', 'route_id', help='Optimize only this route (default: all routes)')
@click.option('--depot', help='Depot location as LAT,LNG (default: by file-name prefix)')
@click.option('--output', help='Write the optimization results as JSON to this file')
@click.pass_context
def optimize(ctx, upload_id: str, route_id: str, depot: str, output: str):
    """Submit routes of a saved upload to the optimization API."""

    async def _optimize():
        service = StopListService(ctx.obj['config_path'])

        try:
            if route_id:
                results = {"routes": [await service.optimize_route(upload_id, route_id, depot)]}
            else:
                results = await service.optimize_all(upload_id, depot)

            click.echo(f"\nOptimization completed:")
            for entry in results['routes']:
                unassigned = entry['unassignedCounts']
                click.echo(f"  {entry['routeId']}: request {entry['requestId']} "
                           f"(unassigned in-sequence {unassigned['inSequence']}, "
                           f"no-sequence {unassigned['noSequence']})")

            if output:
                Path(output).write_text(json.dumps(results, indent=2))
                click.echo(f"\nResults written to {output}")

        except Exception as e:
            logger.error(f"Optimization failed: {e}")
            raise click.ClickException(str(e))
        finally:
            await service.close()

    asyncio.run(_optimize())


@main.command('cache-clear')
@click.pass_context
def cache_clear(ctx):
    """Remove every geocode cache entry."""

    async def _clear():
        service = StopListService(ctx.obj['config_path'])
        try:
            cleared = service.clear_cache()
            click.echo(f"Cleared {cleared} cache entries")
        finally:
            await service.close()

    asyncio.run(_clear())


@main.command('cache-prune')
@click.option('--days', type=int, default=None, help='Maximum entry age in days (default: from config)')
@click.pass_context
def cache_prune(ctx, days: int):
    """Remove geocode cache entries older than the retention window."""

    async def _prune():
        service = StopListService(ctx.obj['config_path'])
        try:
            removed = service.prune_cache(days)
            click.echo(f"Removed {removed} expired cache entries")
        finally:
            await service.close()

    asyncio.run(_prune())


@main.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Bind port')
@click.pass_context
def serve(ctx, host: str, port: int):
    """Start the FastAPI server."""
    import uvicorn

    # The API builds its own service from settings
    os.environ['STOPLIST_CONFIG'] = ctx.obj['config_path']

    click.echo("Starting stop-list API server...")
    click.echo(f"API documentation: http://localhost:{port}/docs")

    try:
        uvicorn.run("stoplist.api:app", host=host, port=port)
    except Exception as e:
        logger.error(f"Server failed to start: {e}")
        raise click.ClickException(str(e))


if __name__ == '__main__':
    main()
