from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from vbs.dependencies import get_current_user
from vbs.schemas import UploadResponse
from vbs.services import file_service

router = APIRouter(prefix="/api/v1/files", tags=["files"])

@router.post("/upload", status_code=201, response_model=UploadResponse, dependencies=[Depends(get_current_user)])
async def upload(file: UploadFile = File(...)):
    return await file_service.save_image(file)

@router.get("/{filename}")
async def serve(filename: str):
    return FileResponse(file_service.resolve(filename))
