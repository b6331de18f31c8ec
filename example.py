import logging
import typing

import numpy as np

import porus

np.set_printoptions(precision=4, suppress=False)  # type: ignore

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


def main():
    grid_shape = typing.cast(porus.ThreeDimensions, (6, 6, 4))
    # Block of 3 m x 3 m x 1 m with thinner top and bottom layers
    grid = porus.CartesianGrid(
        dimensions=grid_shape, cell_sizes=(0.5, 0.5, [0.2, 0.3, 0.3, 0.2])
    )
    nx, ny, nz = grid_shape
    layer = np.arange(grid.number_of_cells) // (nx * ny)

    # Permeability in mD per layer, anisotropic with kv/kh = 0.1
    layer_permeability = np.array([50.0, 400.0, 120.0, 800.0]) * porus.c.MILLIDARCY
    permeability = np.empty((grid.number_of_cells, 3))
    permeability[:, 0] = layer_permeability[layer]
    permeability[:, 1] = layer_permeability[layer]
    permeability[:, 2] = 0.1 * layer_permeability[layer]
    porosity = np.linspace(0.12, 0.28, nz)[layer]

    # Tight layers (0 and 2) and clean layers (1 and 3) have different curves
    rock_types = np.where(layer % 2 == 0, 0, 1)
    properties = porus.ReservoirProperties(
        permeability=permeability,
        porosity=porosity,
        relperm_models=[
            porus.CoreyRelPermModel(
                first_phase_residual_saturation=0.2,
                second_phase_residual_saturation=0.15,
                first_phase_exponent=3.0,
                second_phase_exponent=2.0,
                first_phase_endpoint=0.4,
            ),
            porus.CoreyRelPermModel(
                first_phase_residual_saturation=0.1,
                second_phase_residual_saturation=0.1,
                first_phase_exponent=2.0,
                second_phase_exponent=2.0,
                first_phase_endpoint=0.7,
            ),
        ],
        capillary_pressure_models=[
            porus.BrooksCoreyCapillaryPressureModel(
                entry_pressure=8000.0,
                first_phase_residual_saturation=0.2,
                second_phase_residual_saturation=0.15,
            ),
            porus.BrooksCoreyCapillaryPressureModel(
                entry_pressure=2000.0,
                first_phase_residual_saturation=0.1,
                second_phase_residual_saturation=0.1,
            ),
        ],
        rock_types=rock_types,
    )

    config = porus.Config(
        boundary_condition_type="periodic",
        simulation_steps=20,
        stepsize=0.05,
        viscosity1=0.5 * porus.c.CENTIPOISE,
        viscosity2=2.0 * porus.c.CENTIPOISE,
        print_inoutflows=False,
    )
    upscaler = porus.SteadyStateUpscaler(grid, properties, config)

    absolute_permeability = upscaler.upscale_single_phase()
    print("Upscaled absolute permeability (mD):")
    print(absolute_permeability / porus.c.MILLIDARCY)

    pressure_drop = 1.0 * porus.c.BAR
    for saturation in (0.3, 0.5, 0.7):
        for flow_direction in range(3):
            kr1, kr2 = upscaler.upscale_steady_state(
                flow_direction=flow_direction,
                initial_saturation=saturation,
                boundary_saturation=saturation,
                pressure_drop=pressure_drop,
                upscaled_perm=absolute_permeability,
            )
            average = upscaler.last_saturation_upscaled(flow_direction)
            print(
                f"S = {saturation:.2f}, direction {flow_direction}, "
                f"steady-state average saturation {average:.4f}"
            )
            print(f"kr1 diagonal: {np.diag(kr1)}")
            print(f"kr2 diagonal: {np.diag(kr2)}")

    print(f"Runs: {upscaler.run_count}")


if __name__ == "__main__":
    main()
