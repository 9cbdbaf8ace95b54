# Géométrie attendue par les modèles (volume "conformé" type FreeSurfer, orientation LIA).
CONFORMED_DIMS = (256, 256, 256)
CONFORMED_VOXELS = 256 * 256 * 256
CONFORMED_PERM_RAS = (-1, 3, -2)
CONFORMED_AXCODES = ("L", "I", "A")

# Taille de l'en-tête NIfTI-1 (348 octets + 4 octets d'extension) devant les voxels
# d'un dessin sérialisé.
NIFTI_HEADER_BYTES = 352
NIFTI_UINT8_DATATYPE = 2

# Intent code NIfTI des volumes de labels catégoriels.
LABEL_INTENT_CODE = 1002

# Colormap de secours si la table d'atlas configurée est inconnue.
FALLBACK_COLORMAP = "actc"

# Slots de la scène (0 = volume de base, 1 = overlay).
BASE_SLOT = 0
OVERLAY_SLOT = 1

DEFAULT_LOCATION_LINE = "Drag and Drop any NIfTI image"
LOCATION_DELIMITER = "   "

MEMORY_OK = ("Memory OK", "green")
MEMORY_ISSUE = ("Memory Issue", "red")

DIAGNOSTICS_BANNER = ":: Diagnostics can help resolve issues, attach this report when filing one ::\n"
DIAGNOSTICS_STATUS_OK = "Status: OK"

DEFAULT_OVERLAY_OPACITY = 128
DEFAULT_BACKGROUND_OPACITY = 255

DRAG_MODE_OPTIONS = ["none", "contrast", "measurement", "pan/zoom", "slicer3D"]
DEFAULT_DRAG_MODE = 3

# (label, valeur) ; valeur & 7 = couleur du stylo, valeur > 7 = remplissage.
PEN_OPTIONS = [
    ("Off", -1),
    ("On", 2),
    ("Filled", 10),
    ("Erase", 0),
]

DRAW_ACTION_OPTIONS = [
    ("Undo", 0),
    ("Append", 1),
    ("Remove", 2),
]

CLIP_PLANE_ON = [0, 0, 90]
CLIP_PLANE_OFF = [2, 0, 90]

# Couleurs RGB des labels pour l'aperçu (index = valeur du label).
MASK_COLORS_RGB = {
    1: [255, 0, 0],
    2: [0, 255, 0],
    3: [0, 0, 255],
    4: [255, 165, 0],
    5: [200, 100, 255],
    6: [100, 255, 100],
    7: [0, 255, 255],
}
