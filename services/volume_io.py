"""Chargement / sauvegarde des volumes NIfTI et export de la scène."""

from __future__ import annotations

import base64
import gzip
import json
import logging
from pathlib import Path
from typing import Any, Dict

import nibabel as nib
import numpy as np

from models.scene_model import SceneModel
from models.volume import ColormapLabel, Volume, VolumeHeader

NIFTI_SUFFIXES = (".nii", ".nii.gz", ".gz")
LOAD_ERROR_MESSAGE = "Error loading file. Please make sure it is a valid NIfTI file."


def is_nifti_path(path: str | Path) -> bool:
    return str(path).lower().endswith(NIFTI_SUFFIXES)


def _unscaled(image: nib.Nifti1Image) -> np.ndarray:
    """Raw stored samples; slope / intercept are kept apart in ``VolumeHeader``."""
    if nib.is_proxy(image.dataobj):
        return np.asarray(image.dataobj.get_unscaled())
    return np.asarray(image.dataobj)


class VolumeIO:
    """Lit un NIfTI en ``Volume`` et sauvegarde overlays / scènes."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

    def load(self, path: str | Path) -> Volume:
        """Charge un NIfTI 3D (les volumes 4D gardent leur premier volume)."""
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Fichier introuvable: {file_path}")
        if not is_nifti_path(file_path):
            raise ValueError("Please drop a valid NIfTI file (.nii or .nii.gz)")

        image = nib.load(str(file_path))
        data = _unscaled(image)
        if data.ndim == 4:
            data = data[..., 0]
        if data.ndim != 3:
            raise ValueError(f"Volume 3D attendu, reçu {data.ndim}D.")

        slope, inter = image.header.get_slope_inter()
        header = VolumeHeader(
            scl_slope=1.0 if slope is None else float(slope),
            scl_inter=0.0 if inter is None else float(inter),
            intent_code=int(image.header["intent_code"]),
        )
        volume = Volume.from_array(
            np.asarray(data),
            affine=image.affine,
            header=header,
            name=file_path.name,
        )
        self.logger.info(
            "Volume chargé | dims=%s | dtype=%s | perm_ras=%s | path=%s",
            volume.dims,
            volume.img.dtype,
            volume.perm_ras,
            file_path,
        )
        return volume

    def save_volume(self, volume: Volume, destination: str | Path) -> str:
        """Sauvegarde un volume en NIfTI (``.nii.gz`` ajouté si absent)."""
        path = Path(destination)
        if not is_nifti_path(path):
            path = path.with_suffix(".nii.gz")
        nib.save(volume.to_nifti(), str(path))
        self.logger.info("Volume sauvegardé: %s", path)
        return str(path)

    def save_scene(self, scene: SceneModel, destination: str | Path, **extra: Any) -> str:
        """Serialise every slot and the display state into a JSON scene document."""
        path = Path(destination)
        if path.suffix.lower() != ".nvd":
            path = path.with_suffix(".nvd")
        document: Dict[str, Any] = {
            "version": 1,
            "clipPlane": list(scene.clip_plane),
            "dragMode": scene.drag_mode,
            "volumes": [self._encode_volume(volume) for volume in scene.volumes],
        }
        document.update(extra)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(document, handle)
        self.logger.info("Scène sauvegardée: %s (%d volumes)", path, len(scene.volumes))
        return str(path)

    def load_scene(self, source: str | Path) -> SceneModel:
        with Path(source).open("r", encoding="utf-8") as handle:
            document = json.load(handle)
        scene = SceneModel()
        for raw in document.get("volumes", []):
            scene.add_volume(self._decode_volume(raw))
        scene.set_clip_plane(document.get("clipPlane", scene.clip_plane))
        scene.set_drag_mode(document.get("dragMode", scene.drag_mode))
        return scene

    @staticmethod
    def _encode_volume(volume: Volume) -> Dict[str, Any]:
        payload = gzip.compress(volume.to_nifti().to_bytes())
        return {
            "name": volume.name,
            "colormap": volume.colormap,
            "colormapLabel": None
            if volume.colormap_label is None
            else {
                "R": volume.colormap_label.R,
                "G": volume.colormap_label.G,
                "B": volume.colormap_label.B,
                "labels": volume.colormap_label.labels,
            },
            "opacity": volume.opacity,
            "header": {
                "scl_slope": volume.header.scl_slope,
                "scl_inter": volume.header.scl_inter,
                "intent_code": volume.header.intent_code,
            },
            "data": base64.b64encode(payload).decode("ascii"),
        }

    @staticmethod
    def _decode_volume(raw: Dict[str, Any]) -> Volume:
        image = nib.Nifti1Image.from_bytes(gzip.decompress(base64.b64decode(raw["data"])))
        label = raw.get("colormapLabel")
        header = raw.get("header") or {}
        return Volume.from_array(
            _unscaled(image),
            affine=image.affine,
            header=VolumeHeader(
                scl_slope=float(header.get("scl_slope", 1.0)),
                scl_inter=float(header.get("scl_inter", 0.0)),
                intent_code=int(header.get("intent_code", 0)),
            ),
            name=raw.get("name", ""),
            colormap=raw.get("colormap", "gray"),
            colormap_label=None if label is None else ColormapLabel(**label),
            opacity=float(raw.get("opacity", 1.0)),
        )
