from workflow_cli.gist.uploader import GistUpload, GistUploader, has_gist_permissions, is_binary_file

__all__ = ["GistUpload", "GistUploader", "has_gist_permissions", "is_binary_file"]
