from src.specs.common.errors import MalformedPathError
from src.specs.models.path import PathDescriptor


def resolve_path(pathname: str) -> PathDescriptor:
    """Map ``/{bucket}/{...}/{folder}/{file}`` to bucket, image and config locations.

    The config for ``A/B/C/D/file.ext`` is ``A/B/C/D.json``: the file name and
    its folder are dropped, and the folder name becomes the config file name.
    """
    path = pathname[1:] if pathname.startswith("/") else pathname
    parts = [p for p in path.split("/") if p]
    if len(parts) < 3:
        raise MalformedPathError(
            f"Path needs at least 3 segments (bucket/folder/file), got {len(parts)}: {pathname!r}",
            path=pathname,
            details={"segments": parts},
        )

    bucket_name = parts[0]
    image_path = "/".join(parts[1:])
    image_parts = image_path.split("/")
    if len(image_parts) < 2:
        raise MalformedPathError(
            f"Image path needs at least folder/file: {image_path!r}",
            path=pathname,
        )

    config_dir = "/".join(image_parts[:-2])
    folder_name = image_parts[-2]
    config_key = f"{config_dir}/{folder_name}.json" if config_dir else f"{folder_name}.json"
    return PathDescriptor(
        bucketName=bucket_name,
        imagePath=image_path,
        configDir=config_dir,
        folderName=folder_name,
        configKey=config_key,
    )


def build_resource_url(origin: str, bucket_name: str, resource_path: str) -> str:
    origin = origin.strip().rstrip("/")
    if not (origin.startswith("http://") or origin.startswith("https://")):
        origin = f"https://{origin}"
    return f"{origin}/{bucket_name}/{resource_path}"
