from pydantic import BaseModel

class ProofUpload(BaseModel):
    # Raw base64 or a data URL ("data:image/png;base64,...")
    image_base64: str
    file_ext: str = "jpg"

class ProofCommit(BaseModel):
    proof_url: str
