"""
Closed-loop simulation of GCMPC on a disturbed double integrator.

Disturbance: w = Delta y with y = C_y x + D_y_u u and ||Delta|| <= 1,
drawn at random every step. Plots states, input and constraint limits.
"""

import os
import sys

import matplotlib.pyplot as plt
import numpy as np

# Add parent directory to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(parent_dir)

from GCMPC import GCMPC, ConstraintModel, SystemModel


def setup_controller(Ts: float, N: int, soft: bool = False) -> GCMPC:
    """Double integrator with 5% state dependent uncertainty, |p| <= 5, |v| <= 2, |u| <= 1."""
    system = SystemModel.from_continuous(np.array([[0.0, 1.0], [0.0, 0.0]]), np.array([[0.0], [1.0]]), Ts)
    constraint = ConstraintModel.from_bounds(
        x_min=np.array([-5.0, -2.0]),
        x_max=np.array([5.0, 2.0]),
        u_min=np.array([-1.0]),
        u_max=np.array([1.0]),
        soft=soft,
    )

    mpc = GCMPC()
    mpc.set_system(system.a, system.b_u)
    mpc.set_disturbance(b_w=0.05 * np.eye(2), c_y=np.eye(2), d_y_u=np.zeros((2, 1)))
    mpc.set_cost(q=np.diag([1.0, 0.1]), r=np.array([[0.1]]))
    mpc.set_constraint(constraint.h_x, constraint.h_u, constraint.g, soft=constraint.soft)
    mpc.generate(N)
    return mpc


def simulate(mpc: GCMPC, x0: np.ndarray, n_steps: int, seed: int = 0):
    """Run the closed loop, returning state (nx, n_steps+1) and input (nu, n_steps) histories."""
    rng = np.random.default_rng(seed)
    system, disturbance = mpc.system, mpc.disturbance

    x_hist = np.zeros((system.n_x, n_steps + 1))
    u_hist = np.zeros((system.n_u, n_steps))
    x_hist[:, 0] = x0
    for k in range(n_steps):
        x = x_hist[:, k]
        u = mpc.controller.solve(x)

        # Worst case style disturbance, Delta scaled to unit spectral norm
        delta = rng.uniform(-1.0, 1.0, (disturbance.n_w, disturbance.n_y))
        delta /= max(np.linalg.norm(delta, 2), 1.0)
        y = disturbance.c_y @ x + disturbance.d_y_u @ u
        w = delta @ y

        x_hist[:, k + 1] = system.a @ x + system.b_u @ u + disturbance.b_w @ w
        u_hist[:, k] = u
    return x_hist, u_hist


def plot_closed_loop(x_hist, u_hist, Ts, save_path=None):
    t = np.arange(x_hist.shape[1]) * Ts
    fig, axes = plt.subplots(3, 1, figsize=(8, 8), sharex=True)

    for ax, i, label, bound in [(axes[0], 0, "position", 5.0), (axes[1], 1, "velocity", 2.0)]:
        ax.plot(t, x_hist[i], "b-", linewidth=2, label=label)
        ax.axhline(bound, color="r", linestyle="--", label="constraint")
        ax.axhline(-bound, color="r", linestyle="--")
        ax.set_ylabel(label)
        ax.grid(True, alpha=0.3)
        ax.legend()

    axes[2].step(t[:-1], u_hist[0], "g-", where="post", linewidth=2, label="u")
    axes[2].axhline(1.0, color="r", linestyle="--", label="constraint")
    axes[2].axhline(-1.0, color="r", linestyle="--")
    axes[2].set_ylabel("input")
    axes[2].set_xlabel("time (s)")
    axes[2].grid(True, alpha=0.3)
    axes[2].legend()

    fig.suptitle("GCMPC closed loop, double integrator", fontsize=14, fontweight="bold")
    fig.tight_layout()
    if save_path is not None:
        fig.savefig(save_path, dpi=150)
        print(f"Saved: {save_path}")
    return fig


if __name__ == "__main__":
    Ts = 0.1
    N = 15
    mpc = setup_controller(Ts, N, soft=True)

    print("=" * 60)
    print("GCMPC SETUP")
    print("=" * 60)
    print(f"Horizon: {N} steps ({N * Ts:.1f}s)")
    print(f"GCC gain K: {mpc.gcc.k}")
    print(f"Nilpotent gain K_np: {mpc.nilpotent.k}")
    print(f"Constraint rows: {mpc.constraint.n_c}")
    print()

    x_hist, u_hist = simulate(mpc, np.array([-3.0, 0.0]), n_steps=80)
    print(f"Final state: {x_hist[:, -1]}")
    print(f"Max |u|: {np.max(np.abs(u_hist)):.3f}")

    plot_closed_loop(x_hist, u_hist, Ts, save_path=os.path.join(parent_dir, "gcmpc_closed_loop.png"))
    plt.show()
