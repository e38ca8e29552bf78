"""Command line entry point for the attendance capture client."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from pathlib import Path

import click
from pydantic import ValidationError

from attendance_capture.adapters.file_camera import FileCamera
from attendance_capture.adapters.static_location import StaticLocationProvider
from attendance_capture.app_logging import configure_logging
from attendance_capture.config import Settings
from attendance_capture.containers import AppContainer, build_container
from attendance_capture.domain.auth import RolePermissions
from attendance_capture.domain.capture import CapturePurpose, PermissionState
from attendance_capture.domain.errors import (
    CaptureFailedError,
    CaptureFlowError,
    SessionExpiredError,
)
from attendance_capture.services.capture import (
    CAMERA_PERMISSION_MESSAGE,
    CAPTURE_FAILED_MESSAGE,
    CameraCapability,
    LocationCapability,
    Notice,
)

logger = logging.getLogger(__name__)

IMAGE_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)
REQUEST_FAILED_MESSAGE = "Request failed. Please try again."
TODAY_UNAVAILABLE_MESSAGE = "Could not load today's attendance."


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Face attendance client for the HRMS backend."""
    ctx.ensure_object(dict)
    settings = ctx.obj.get("settings") or Settings()
    ctx.obj["settings"] = settings
    configure_logging(settings.log_level)


@cli.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
@click.pass_context
def login(ctx: click.Context, email: str, password: str) -> None:
    """Sign in and store the access token."""

    async def work(container: AppContainer) -> bool:
        result = await container.auth_service.login(email, password)
        if not result.success or result.user is None:
            click.echo(f"Login failed: {result.error}", err=True)
            return False
        click.echo(f"Signed in as {result.user.display_name}")
        return True

    _run(ctx, work)


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Sign out and clear stored credentials."""

    async def work(container: AppContainer) -> bool:
        await container.auth_service.logout()
        click.echo("Signed out")
        return True

    _run(ctx, work)


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the signed-in user and their permissions."""

    async def work(container: AppContainer) -> bool:
        user = await container.auth_service.restore()
        if user is None:
            click.echo("Not signed in", err=True)
            return False
        click.echo(f"{user.display_name} ({user.role.value})")
        permissions = RolePermissions.for_user(user)
        for name, allowed in asdict(permissions).items():
            click.echo(f"  {name}: {'yes' if allowed else 'no'}")
        return True

    _run(ctx, work)


@cli.command()
@click.pass_context
def today(ctx: click.Context) -> None:
    """Show today's attendance for the signed-in employee."""

    async def work(container: AppContainer) -> bool:
        return await _show_today(container)

    _run(ctx, work)


@cli.command()
@click.argument("image", type=IMAGE_PATH)
@click.option("--lat", type=float, help="Latitude for a geo-validated punch.")
@click.option("--lng", type=float, help="Longitude for a geo-validated punch.")
@click.pass_context
def punch(
    ctx: click.Context, image: Path, lat: float | None, lng: float | None
) -> None:
    """Mark attendance with a face photo, optionally with location."""
    if (lat is None) != (lng is None):
        raise click.UsageError("--lat and --lng must be given together")
    purpose = (
        CapturePurpose.ATTENDANCE if lat is None else CapturePurpose.GEO_ATTENDANCE
    )

    async def work(container: AppContainer) -> bool:
        if container.auth_service.current_user() is None:
            click.echo("Please log in first.", err=True)
            return False
        service = container.capture_service
        if await service.request_camera_access() is not PermissionState.GRANTED:
            click.echo(CAMERA_PERMISSION_MESSAGE, err=True)
            return False
        session = service.open_session(purpose)
        try:
            try:
                await service.capture_photo(session)
            except CaptureFailedError:
                click.echo(CAPTURE_FAILED_MESSAGE, err=True)
                return False
            notice = await service.punch(session)
        finally:
            await service.cancel(session)
        if notice is None:
            return False
        _echo_notice(notice)
        if notice.success:
            try:
                await _show_today(container)
            except (CaptureFlowError, ValidationError) as exc:
                logger.warning("Today lookup failed after punch: %s", exc)
                click.echo(TODAY_UNAVAILABLE_MESSAGE, err=True)
        return notice.success

    _run(
        ctx,
        work,
        camera=FileCamera(source=image, capture_dir=_capture_dir(ctx)),
        location=StaticLocationProvider(latitude=lat, longitude=lng),
    )


@cli.command()
@click.argument("front", type=IMAGE_PATH)
@click.argument("left", type=IMAGE_PATH)
@click.argument("right", type=IMAGE_PATH)
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option("--phone", required=True)
@click.option("--lat", type=float, required=True, help="Geofence centre latitude.")
@click.option("--lng", type=float, required=True, help="Geofence centre longitude.")
@click.pass_context
def register(  # noqa: PLR0913
    ctx: click.Context,
    front: Path,
    left: Path,
    right: Path,
    first_name: str,
    last_name: str,
    phone: str,
    lat: float,
    lng: float,
) -> None:
    """Register a face from front, left and right photos."""
    camera = FileCamera(capture_dir=_capture_dir(ctx))

    async def work(container: AppContainer) -> bool:
        flow = container.registration_flow()
        flow.start()
        notice = flow.set_details(first_name, last_name, phone)
        if notice is None:
            notice = await flow.acquire_geofence()
        if notice is None:
            notice = flow.begin_capture()
        if notice is not None:
            _echo_notice(notice)
            return False
        for photo in (front, left, right):
            camera.point_at(photo)
            click.echo(f"{flow.instruction}: {photo.name}")
            notice = await flow.capture_and_upload()
            if notice is None or not notice.success:
                if notice is not None:
                    _echo_notice(notice)
                await flow.cancel()
                return False
            _echo_notice(notice)
        return flow.finished

    _run(
        ctx,
        work,
        camera=camera,
        location=StaticLocationProvider(latitude=lat, longitude=lng),
    )


async def _show_today(container: AppContainer) -> bool:
    user = container.auth_service.current_user()
    if user is None or user.employee_id is None:
        click.echo("No employee profile for this account.", err=True)
        return False
    record = await container.hrms_client.get_today_attendance(user.employee_id)
    if record is None:
        click.echo("No attendance recorded today.")
        return True
    hours = record.hours or 0.0
    click.echo(
        f"{record.date}: {record.status} "
        f"(in {record.check_in or '--:--'}, out {record.check_out or '--:--'}, "
        f"hours {hours:.1f}h)"
    )
    return True


def _capture_dir(ctx: click.Context) -> Path | None:
    capture_dir = ctx.obj["settings"].capture_dir
    return Path(capture_dir) if capture_dir else None


def _echo_notice(notice: Notice) -> None:
    click.echo(f"{notice.title}: {notice.text}", err=not notice.success)


def _run(
    ctx: click.Context,
    work: Callable[[AppContainer], Awaitable[bool]],
    *,
    camera: CameraCapability | None = None,
    location: LocationCapability | None = None,
) -> None:
    """Build the container, run one command and release resources."""
    settings = ctx.obj["settings"]
    factory = ctx.obj.get("container_factory", build_container)
    container = factory(settings, camera=camera, location=location)

    async def runner() -> bool:
        try:
            return await work(container)
        except SessionExpiredError:
            click.echo("Session expired. Please log in again.", err=True)
            return False
        except (CaptureFlowError, ValidationError) as exc:
            logger.warning("Command failed: %s", exc)
            click.echo(REQUEST_FAILED_MESSAGE, err=True)
            return False
        finally:
            await container.close_resources()

    if not asyncio.run(runner()):
        ctx.exit(1)


if __name__ == "__main__":
    cli()
