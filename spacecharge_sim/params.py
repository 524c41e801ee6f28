from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class SimulationParams:
    n_timesteps: int = 1000
    dt: float = 1e-8  # s

    theta: float = 0.5  # Barnes-Hut opening angle
    min_distance: float = 1e-9  # m, Coulomb distance floor
    space_charge_factor: float = 1.0

    integrator: str = "serial"  # serial | parallel
    field_solver: str = "tree"  # tree | full_sum
    n_workers: int = 0  # 0 = one per CPU
    chunk_size: int = 40

    collision_model: str = "none"  # none | hard_sphere
    background_pressure: float = 0.0  # Pa
    background_temperature: float = 298.0  # K
    collision_gas_mass_amu: float = 4.0
    collision_gas_diameter: float = 2.1e-10  # m
    particle_diameter: float = 1e-9  # m

    seed: int = 1

    def clamp(self) -> "SimulationParams":
        self.n_timesteps = max(0, int(self.n_timesteps))
        self.dt = max(1e-18, float(self.dt))
        self.theta = min(2.0, max(0.0, float(self.theta)))
        self.min_distance = max(0.0, float(self.min_distance))
        self.space_charge_factor = max(0.0, float(self.space_charge_factor))
        self.integrator = str(self.integrator or "serial").strip().lower()
        if self.integrator not in {"serial", "parallel"}:
            self.integrator = "serial"
        self.field_solver = str(self.field_solver or "tree").strip().lower()
        if self.field_solver in {"fullsum", "full-sum"}:
            self.field_solver = "full_sum"
        if self.field_solver not in {"tree", "full_sum"}:
            self.field_solver = "tree"
        self.n_workers = max(0, int(self.n_workers))
        self.chunk_size = max(1, min(100000, int(self.chunk_size)))
        self.collision_model = str(self.collision_model or "none").strip().lower()
        if self.collision_model in {"hs", "hardsphere"}:
            self.collision_model = "hard_sphere"
        if self.collision_model not in {"none", "hard_sphere"}:
            self.collision_model = "none"
        self.background_pressure = max(0.0, float(self.background_pressure))
        self.background_temperature = max(1e-3, float(self.background_temperature))
        self.collision_gas_mass_amu = max(1e-3, float(self.collision_gas_mass_amu))
        self.collision_gas_diameter = max(0.0, float(self.collision_gas_diameter))
        self.particle_diameter = max(0.0, float(self.particle_diameter))
        self.seed = int(self.seed)
        return self

    def validate(self) -> list[str]:
        warnings: list[str] = []

        if self.integrator == "serial":
            if self.n_workers > 0:
                warnings.append("n_workers only applies to the parallel integrator.")
        if self.field_solver == "full_sum" and self.theta > 0.0:
            warnings.append("theta is ignored by the full_sum field solver.")
        if self.collision_model == "none":
            if self.background_pressure > 0.0:
                warnings.append("background_pressure has no effect when collision_model is none.")
        elif self.background_pressure <= 0.0:
            warnings.append("collision_model=hard_sphere with zero background_pressure never collides.")
        if self.space_charge_factor == 0.0:
            warnings.append("space_charge_factor=0 disables particle interaction.")
        if self.n_timesteps == 0:
            warnings.append("n_timesteps=0: run only fires the initial and final hooks.")

        return warnings

    @classmethod
    def load(cls, path: str | Path) -> "SimulationParams":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("The parameter file must contain a JSON object.")
        # Older configs named the step count `timesteps`.
        if "timesteps" in data and "n_timesteps" not in data:
            data["n_timesteps"] = data["timesteps"]
        filtered: dict[str, Any] = {k: v for k, v in data.items() if k in cls.__annotations__}
        return cls(**filtered).clamp()

    def save(self, path: str | Path) -> None:
        data = asdict(self)
        Path(path).write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
