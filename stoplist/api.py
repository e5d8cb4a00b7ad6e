"""
FastAPI application for stop-list processing.
Provides REST API endpoints for upload, saved uploads, CSV export and optimization.
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from .errors import NoRoutesFoundError, OptimizationError, UploadNotFoundError, WorkbookError
from .export import export_filename
from .schemas import HealthResponse, OptimizeAllRequest, OptimizeFullRequest, OptimizeRouteRequest
from .service import StopListService


logger = logging.getLogger(__name__)

# Global service instance
service: Optional[StopListService] = None


def get_service() -> StopListService:
    """Dependency to get service instance."""
    global service
    if service is None:
        service = StopListService()
    return service


def _route_source(request: OptimizeRouteRequest, svc: StopListService):
    """Inline route data wins over a saved upload id."""
    if request.route_data is not None:
        return request.route_data, request.file_name
    if request.upload_id:
        try:
            upload = svc.find_upload(request.upload_id)
        except UploadNotFoundError:
            raise HTTPException(status_code=404, detail="Upload not found")
        return upload.route_set(), upload.file_name
    raise HTTPException(status_code=400, detail="Missing route data")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Stop List Router",
        description="Parses driver stop-list workbooks, geocodes deliveries and submits route optimizations",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Persist the cache and close clients on shutdown."""
        if service:
            await service.close()
        logger.info("Stop-list API stopped")

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(svc: StopListService = Depends(get_service)):
        """Health check endpoint."""
        health_data = svc.health_check()
        return HealthResponse(
            status=health_data["status"],
            version=svc.config.project.version,
            database_connected=health_data["database_connected"],
            geocoder_configured=health_data["geocoder_configured"],
            cache_entries=health_data["cache_entries"],
            timestamp=health_data["timestamp"]
        )

    @app.post("/api/upload")
    async def upload_workbook(
        file: Optional[UploadFile] = File(default=None),
        svc: StopListService = Depends(get_service)
    ):
        """
        Parse and geocode an uploaded stop-list workbook.
        The result is stored as a saved upload.
        """
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")
        try:
            payload = await file.read()
            return await svc.process_workbook(file.filename, payload)
        except (WorkbookError, NoRoutesFoundError) as e:
            logger.error(f"Upload rejected: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Error processing file: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to process file: {e}")

    @app.get("/api/uploads")
    async def list_uploads(svc: StopListService = Depends(get_service)):
        """Saved uploads, newest first."""
        try:
            return svc.list_uploads()
        except Exception as e:
            logger.error(f"Failed to get prior uploads: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/uploads/{upload_id}")
    async def get_upload(upload_id: str, svc: StopListService = Depends(get_service)):
        try:
            return svc.get_upload(upload_id)
        except UploadNotFoundError:
            raise HTTPException(status_code=404, detail="Upload not found")
        except Exception as e:
            logger.error(f"Failed to get upload: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/api/uploads/{upload_id}", status_code=204)
    async def delete_upload(upload_id: str, svc: StopListService = Depends(get_service)):
        if not svc.delete_upload(upload_id):
            raise HTTPException(status_code=404, detail="Upload not found")
        return Response(status_code=204)

    @app.get("/api/uploads/{upload_id}/csv")
    async def export_upload(upload_id: str, svc: StopListService = Depends(get_service)):
        """Download a saved upload as CSV."""
        try:
            csv_text = svc.export_csv(upload_id)
        except UploadNotFoundError:
            raise HTTPException(status_code=404, detail="Upload not found")
        return Response(
            content=csv_text,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    @app.delete("/api/cache/clear")
    async def clear_cache(svc: StopListService = Depends(get_service)):
        """Remove every geocode cache entry."""
        try:
            cleared = svc.clear_cache()
            return {"success": True, "message": f"Cache cleared: {cleared} entries removed"}
        except Exception as e:
            logger.error(f"Error clearing cache: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to clear cache: {e}")

    @app.post("/api/optimize/{route_id}")
    async def optimize_route(
        route_id: str,
        request: OptimizeRouteRequest,
        svc: StopListService = Depends(get_service)
    ):
        """Submit one route as in-sequence and no-sequence optimizations."""
        route_set, file_name = _route_source(request, svc)
        try:
            return await svc.optimize_route_set(
                route_set, route_id, request.depot_location, file_name
            )
        except OptimizationError as e:
            logger.error(f"Optimization rejected: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Error optimizing route: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to optimize route: {e}")

    @app.post("/api/optimize-all")
    async def optimize_all(
        request: OptimizeAllRequest,
        svc: StopListService = Depends(get_service)
    ):
        """Optimize every route with bounded submit/poll concurrency."""
        route_set, file_name = _route_source(request, svc)
        try:
            return await svc.optimize_all_routes(
                route_set, request.depot_location, file_name,
                request.submit_concurrency, request.poll_concurrency
            )
        except OptimizationError as e:
            logger.error(f"Optimization rejected: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Error optimizing all routes: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to optimize all routes: {e}")

    @app.post("/api/optimize-full")
    async def optimize_full(
        request: OptimizeFullRequest,
        svc: StopListService = Depends(get_service)
    ):
        """Pass a caller-built request body straight to the optimization API."""
        try:
            return await svc.optimize_custom(request.request_body)
        except OptimizationError as e:
            logger.error(f"Optimization rejected: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Error running full optimization: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to run full optimization: {e}")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
