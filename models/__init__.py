"""
Modèles de l'application (aucune dépendance Qt).

- Volume / ColormapLabel : grille 3D, en-tête, orientation, colormap de labels
- SceneModel : slots de volumes (base, overlay), dessin, plan de coupe
- ViewStateModel : état de l'interface (progression, opacités, stylo)
- ModelCatalog : modèles de segmentation disponibles
"""

from .drawing_model import DrawingModel
from .messages import InferenceFailure, InferenceResult, UiUpdate
from .model_catalog import ModelCatalog, ModelEntry
from .scene_model import SceneModel
from .view_state_model import ViewStateModel
from .volume import ColormapLabel, Volume, VolumeHeader

__all__ = [
    'ColormapLabel',
    'DrawingModel',
    'InferenceFailure',
    'InferenceResult',
    'ModelCatalog',
    'ModelEntry',
    'SceneModel',
    'UiUpdate',
    'ViewStateModel',
    'Volume',
    'VolumeHeader',
]
