import math

import numpy as np
import torch
import matplotlib.pyplot as plt
from lamfbp import FBPOptions, ReconstructionConfig, fbp, laminography_vectors, project


def layered_phantom(Nx, Ny, Nz):
    """Thin slab with a few discs and a cross per layer, typical laminography sample."""
    phantom = np.zeros((Nx, Ny, Nz), dtype=np.float32)
    cx = (Nx - 1) / 2
    cy = (Ny - 1) / 2
    xx, yy = np.meshgrid(np.arange(Nx) - cx, np.arange(Ny) - cy, indexing='ij')
    discs = [
        (0.0, 0.0, 0.35, 0.5),
        (0.2, 0.15, 0.08, 1.0),
        (-0.25, -0.1, 0.12, 0.8),
        (0.05, -0.3, 0.06, 1.0),
    ]
    for iz in range(Nz // 4, 3 * Nz // 4):
        layer = np.zeros((Nx, Ny), dtype=np.float32)
        for (x0, y0, r, ampl) in discs:
            inside = (xx / (Nx / 2) - x0) ** 2 + (yy / (Ny / 2) - y0) ** 2 <= r * r
            layer[inside] += ampl
        # a feature that changes with depth
        shift = iz - Nz // 2
        layer[np.abs(xx - 2 * shift) < 1.5] += 0.5
        phantom[:, :, iz] = layer
    return phantom


def main():
    Nx, Ny, Nz = 96, 96, 24
    phantom = layered_phantom(Nx, Ny, Nz)

    num_angles = 360
    lamino_angle = math.radians(61.0)
    proj_width, proj_height = 128, 48

    device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
    vectors = laminography_vectors(num_angles, lamino_angle=lamino_angle, end_angle=2 * math.pi)
    volume = torch.tensor(phantom, device=device)

    sinogram = project(volume, vectors, (proj_height, proj_width)).detach()

    config = ReconstructionConfig(proj_width, proj_height, num_angles, Nx, Ny, Nz)
    # full circle: opposite projections are not redundant in laminography
    options = FBPOptions(filter='hann', padding='replicate', determine_weights=False,
                         keep_on_gpu=False, verbose=2)
    rec, sinogram_filt, H = fbp(sinogram, config, vectors, options)

    print("Reconstruction shape:", tuple(rec.shape))
    print("Filter shape:", tuple(H.shape))

    reco_cpu = rec.numpy()
    sinogram_cpu = sinogram.cpu().numpy()

    plt.figure(figsize=(16, 4))
    plt.subplot(1, 4, 1)
    plt.imshow(phantom[:, :, Nz // 2], cmap='gray')
    plt.title("Phantom, central layer")
    plt.axis('off')
    plt.subplot(1, 4, 2)
    plt.imshow(sinogram_cpu[:, :, 0], cmap='gray')
    plt.title("Projection 0")
    plt.axis('off')
    plt.subplot(1, 4, 3)
    plt.imshow(reco_cpu[:, :, Nz // 2], cmap='gray')
    plt.title("FBP, central layer")
    plt.axis('off')
    plt.subplot(1, 4, 4)
    plt.imshow(reco_cpu[:, Ny // 2, :].T, cmap='gray', aspect='auto')
    plt.title("FBP, xz cut")
    plt.axis('off')
    plt.tight_layout()
    plt.show()

    print("Phantom range:", phantom.min(), phantom.max())
    print("Reco range:", reco_cpu.min(), reco_cpu.max())


if __name__ == "__main__":
    main()
