import casadi as ca
import numpy as np

import dircol as dc


GRAVITY = 9.81

# Problem setup
problem = dc.OptimalControlProblem("Brachistochrone")
problem.set_time(initial=0.0, final=(0.1, 10.0))

# Variables
problem.add_state("x", initial=0.0, final=10.0)
problem.add_state("y", initial=10.0, final=5.0)
problem.add_state("v", initial=0.0)
problem.add_control("theta", bounds=(0.0, np.pi))


# Dynamics
def dynamics(time, states, controls):
    v = states[2]
    theta = controls[0]
    return dc.DAEOutput(
        dynamics=[v * ca.sin(theta), -v * ca.cos(theta), GRAVITY * ca.cos(theta)]
    )


problem.set_dynamics(dynamics)

# Objective
problem.set_endpoint_cost(lambda final_time, final_states: final_time)

# Mesh and guess
solver = dc.DirectCollocationSolver(
    problem, transcription_scheme="hermite-simpson", num_mesh_points=31
)
time = np.linspace(0.0, 2.0, 11)
guess = dc.Iterate(
    time,
    [np.linspace(0.0, 10.0, 11), np.linspace(10.0, 5.0, 11), np.linspace(0.0, 10.0, 11)],
    [np.full(11, 1.0)],
    ["x", "y", "v"],
    ["theta"],
)
solution = solver.solve(guess)

# Results
print(solution)
if solution.success:
    print(f"Final time: {solution.final_time:.6f}")
    print(f"Final speed: {solution['v'][-1]:.6f}")
