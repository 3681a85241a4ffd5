"""Error report downloads."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from backend.core.config import settings
from backend.core.naming import is_report_file_name

router = APIRouter()


@router.get("/reports/{file_name}")
async def download_report(file_name: str):
    """Download a generated error report by file name."""
    if not is_report_file_name(file_name):
        raise HTTPException(status_code=400, detail="Invalid report name")

    path = settings.resolve_path(settings.reports_dir) / file_name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Report not found")
    return FileResponse(
        path,
        filename=file_name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
