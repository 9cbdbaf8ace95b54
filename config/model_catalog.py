"""Catalogue statique des modèles de segmentation proposés à l'utilisateur."""

from __future__ import annotations

MODEL_CATALOG = [
    {
        "id": 1,
        "model_name": "Tissue GWM (intensity bands)",
        "colormap_path": "./colormaps/colormap_tissue_gwm.json",
        "warning": None,
        "inference": "services.inference_backends:quantile_bands",
        "inference_args": {"n_classes": 3},
    },
    {
        "id": 2,
        "model_name": "Brain mask (Otsu threshold)",
        "colormap_path": None,
        "warning": None,
        "inference": "services.inference_backends:otsu_mask",
        "inference_args": {},
    },
    {
        "id": 3,
        "model_name": "Brain mask (labeled)",
        "colormap_path": "./colormaps/colormap_brain_mask.json",
        "warning": None,
        "inference": "services.inference_backends:otsu_mask",
        "inference_args": {},
    },
    {
        "id": 4,
        "model_name": "Subcortical bands (experimental)",
        "colormap_path": "./colormaps/colormap_subcortical_bands.json",
        "warning": "This model is experimental and labels are coarse intensity bands, not anatomy.",
        "inference": "services.inference_backends:quantile_bands",
        "inference_args": {"n_classes": 5},
    },
]
