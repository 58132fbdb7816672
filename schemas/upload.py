from pydantic import BaseModel


class UploadRequest(BaseModel):
    file: str
    folder: str = "payment_proofs"


class UploadOut(BaseModel):
    url: str
    id: str
