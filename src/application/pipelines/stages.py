"""Stage catalog: every container invocation the named pipelines are built from.

In-unit file names are the unique basenames of the local artifacts, so two
runs never address the same path inside a unit.
"""
from __future__ import annotations

from src.domain.entities.execution_unit import StageDescriptor

NAFNET_CONFIGS = {
    "denoise": "options/test/SIDD/NAFNet-width64.yml",
    "deblur": "options/test/REDS/NAFNet-width64.yml",
}

RELIGHT = StageDescriptor(
    name="relight",
    unit="lowlight",
    inputs=(("image", "/app/{image}"),),
    output="/app/{output}",
    command=(
        "python", "infer.py",
        "--weights", "best_model_LOLv1.pth",
        "--input", "{image}",
        "--output", "{output}",
        "--brightness", "{brightness}",
    ),
    defaults={"brightness": 0.5},
)

ENHANCE = StageDescriptor(
    name="enhance",
    unit="enhance",
    inputs=(("image", "/app/demo/{image}"),),
    output="/app/demo/{output}",
    command=(
        "bash", "-c",
        "export PYTHONPATH=/app:$PYTHONPATH && python3 basicsr/demo.py -opt {config}"
        " --input_path ./demo/{image} --output_path ./demo/{output}",
    ),
    defaults={"config": NAFNET_CONFIGS["denoise"]},
)

# CodeFormer reads a whole directory and names its result folder after --w
FACE_RESTORE = StageDescriptor(
    name="face_restore",
    unit="face_restore",
    inputs=(("image", "/cf/input/{image}"),),
    output="/cf/output/input_{fidelity}/final_results/{image_stem}.png",
    command=(
        "bash", "-c",
        "cd /cf/CodeFormer && python inference_codeformer.py --w {fidelity} --test_path /cf/input",
    ),
    cleanup=("/cf/output/input_{fidelity}",),
    defaults={"fidelity": 0.7},
)

STYLE_TRANSFER = StageDescriptor(
    name="style_transfer",
    unit="style_transfer",
    inputs=(
        ("content", "/app/figures/content/{content}"),
        ("style", "/app/figures/style/{style}"),
    ),
    output="/app/results/output.jpg",
    command=(
        "python", "demo.py",
        "--content", "figures/content/{content}",
        "--style", "figures/style/{style}",
    ),
)

SEGMENT = StageDescriptor(
    name="segment",
    unit="background_removal",
    inputs=(("image", "/app/samples/{image}"),),
    output="/app/samples/{output}",
    command=("python", "app.py", "samples/{image}", "samples/{output}", "models/{model_file}"),
    defaults={"model_file": "u2net.onnx"},
)

POINT_SEGMENT = StageDescriptor(
    name="point_segment",
    unit="object_masking",
    inputs=(("image", "/app/{image}"),),
    output="/app/{output}",
    command=(
        "python", "sam_inference.py",
        "--image", "/app/{image}",
        "--point", "{x},{y}",
        "--output", "/app/{output}",
        "--checkpoint", "sam_vit_b_01ec64.pth",
    ),
)

DILATE_MASK = StageDescriptor(
    name="dilate_mask",
    unit="object_masking",
    inputs=(("mask", "/app/{mask}"),),
    output="/app/{output}",
    command=(
        "python", "dialate.py",
        "--mask", "/app/{mask}",
        "--kernel", "{kernel}",
        "--iter", "{iterations}",
        "--out", "/app/{output}",
    ),
    defaults={"kernel": 7, "iterations": 2},
)

INPAINT_MASK = StageDescriptor(
    name="inpaint",
    unit="inpainting",
    inputs=(("image", "/app/input/{image}"), ("mask", "/app/input/{mask}")),
    output="/app/output/{output}",
    command=(
        "python", "simple_infer.py",
        "--model", "/app/models/big-lama",
        "--image", "/app/input/{image}",
        "--mask", "/app/input/{mask}",
        "--out", "/app/output/{output}",
        "--dilate", "15",
    ),
)

INPAINT_SUBJECT = StageDescriptor(
    name="inpaint_background",
    unit="inpainting",
    inputs=(("image", "/app/input/{image}"), ("subject", "/app/input/{subject}")),
    output="/app/output/{output}",
    command=(
        "python", "simple_infer.py",
        "--model", "/app/models/big-lama",
        "--image", "/app/input/{image}",
        "--subject", "/app/input/{subject}",
        "--out", "/app/output/{output}",
        "--dilate", "15",
    ),
)

HARMONIZE = StageDescriptor(
    name="harmonize",
    unit="harmonization",
    inputs=(
        ("composite", "/workspace/examples/composites/{composite}"),
        ("mask", "/workspace/examples/composites/{mask}"),
    ),
    output="/workspace/examples/composites/{output}",
    command=(
        "python3", "run_inference.py",
        "--image", "/workspace/examples/composites/{composite}",
        "--mask", "/workspace/examples/composites/{mask}",
        "--weights", "pretrained_models/PCTNet_ViT.pth",
        "--model_type", "ViT_pct",
        "--out", "/workspace/examples/composites/{output}",
    ),
)
