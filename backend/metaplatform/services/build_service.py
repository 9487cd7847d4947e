"""
Build Service
Generates a React application from an Application row and packages it as a
Docker image.

    request_build()      -> app_builds queue
    build_application()  -> draft/failed -> building -> built | failed
"""
import html
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import UUID

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from sqlalchemy.orm import Session

from metaplatform.config import settings
from metaplatform.models import Application
from metaplatform.services.queue_service import QueueService
from metaplatform.utils.errors import ValidationError
from metaplatform.utils.metrics import application_builds_total

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "react_app"

# output path -> template name
APP_FILES = {
    "package.json": "package.json.j2",
    "public/index.html": "public/index.html.j2",
    "src/index.js": "src/index.js.j2",
    "src/App.js": "src/App.js.j2",
    "src/index.css": "src/index.css.j2",
    "src/App.css": "src/App.css.j2",
    "Dockerfile": "Dockerfile.j2",
}


def _jsx_text(value: Any) -> str:
    return html.escape(str(value or "")).replace("{", "&#123;").replace("}", "&#125;")


def create_template_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["jsx"] = _jsx_text
    return env


def image_name(application: Application) -> str:
    return f"platform-app-{application.name}:latest"


class BuildService:
    """
    Application code generation and Docker builds

    Usage:
        BuildService(db).build_application(application_id)
    """

    def __init__(self, db: Session, build_root: Optional[str] = None, build_images: Optional[bool] = None):
        self.db = db
        self.build_root = Path(build_root or settings.generated_apps_dir)
        self.build_images = settings.build_docker_images if build_images is None else build_images
        self.env = create_template_env()

    @staticmethod
    def request_build(application: Application) -> Dict[str, Any]:
        """Queue a build for the worker"""
        payload = {"application_id": str(application.id), "action": "build"}
        QueueService.publish_event(settings.app_builds_queue, payload)
        logger.info(f"Build requested for application {application.id}")
        return payload

    def build_application(self, application_id: UUID) -> bool:
        """
        Generate and build an application

        Failures are logged and recorded as status "failed"; they are not raised.

        Returns:
            True when the build completed
        """
        logger.info(f"Starting build for application: {application_id}")
        application = self.db.query(Application).filter(Application.id == application_id).first()
        if not application:
            logger.error(f"Build failed: application not found: {application_id}")
            application_builds_total.labels(status="failed").inc()
            return False

        try:
            if not application.name or not application.name.strip():
                raise ValidationError(f"Application name is required: {application_id}")

            application.status = "building"
            self.db.commit()

            app_dir = self.app_dir(application)
            self.generate_files(application, app_dir)

            if self.build_images:
                self.build_docker_image(application, app_dir)
            else:
                logger.info(f"Docker build skipped for {application.name}")

            application.status = "built"
            self.db.commit()
        except Exception as e:
            logger.error(f"Build failed for application {application_id}: {e}", exc_info=True)
            self.db.rollback()
            application.status = "failed"
            self.db.commit()
            application_builds_total.labels(status="failed").inc()
            return False

        application_builds_total.labels(status="built").inc()
        logger.info(f"Build completed for application: {application_id}")
        return True

    def app_dir(self, application: Application) -> Path:
        """Build directory of an application; always inside build_root"""
        root = self.build_root.resolve()
        app_dir = (root / application.name).resolve()
        if app_dir == root or root not in app_dir.parents:
            raise ValidationError(f"Application name escapes the build directory: {application.name}")
        return app_dir

    def template_context(self, application: Application) -> Dict[str, Any]:
        schema = application.schema
        return {
            "name": application.name,
            "display_name": application.display_name or application.name,
            "description": application.description or "",
            "schema_name": (schema.display_name or schema.name) if schema else "",
            "fields": list(schema.fields) if schema else [],
        }

    def generate_files(self, application: Application, app_dir: Path) -> Dict[str, Path]:
        """Render every application file under app_dir"""
        context = self.template_context(application)
        written = {}
        for relative_path, template_name in APP_FILES.items():
            target = app_dir / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            rendered = self.env.get_template(template_name).render(**context)
            target.write_text(rendered, encoding="utf-8")
            written[relative_path] = target
        logger.info(f"Generated {len(written)} files in {app_dir}")
        return written

    def build_docker_image(self, application: Application, app_dir: Path) -> str:
        """
        Run docker build for the generated app

        Raises:
            subprocess.CalledProcessError: docker build failed
        """
        image = image_name(application)
        completed = subprocess.run(
            ["docker", "build", "-t", image, os.fspath(app_dir)],
            capture_output=True,
            text=True,
            check=True,
        )
        logger.debug(f"Docker build output: {completed.stdout}")
        if completed.stderr:
            logger.warning(f"Docker build warnings: {completed.stderr}")
        logger.info(f"Docker image built successfully: {image}")
        return image
