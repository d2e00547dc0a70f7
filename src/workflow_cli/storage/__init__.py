from workflow_cli.storage.uploader import (
    ArtifactType,
    ArtifactUploader,
    PresignedPost,
    UploadedArtifacts,
)

__all__ = ["ArtifactType", "ArtifactUploader", "PresignedPost", "UploadedArtifacts"]
