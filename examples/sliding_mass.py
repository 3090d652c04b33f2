import dircol as dc


MASS = 10.0
MAX_FORCE = 10.0

# Problem setup
problem = dc.OptimalControlProblem("Sliding mass")
problem.set_time(initial=0.0, final=(0.0, 10.0))

# Variables
problem.add_state("x", bounds=(0.0, 1.0), initial=0.0, final=1.0)
problem.add_state("u", bounds=(-100.0, 100.0), initial=0.0, final=0.0)
problem.add_control("a", bounds=(-100.0, 100.0))
problem.add_control("F", bounds=(-MAX_FORCE, MAX_FORCE))
problem.add_path_constraint("F=ma", bounds=0.0)


# Dynamics
def dynamics(time, states, controls):
    return dc.DAEOutput(
        dynamics=[states[1], controls[0]],
        path=[controls[1] - MASS * controls[0]],
    )


problem.set_dynamics(dynamics)

# Objective
problem.set_endpoint_cost(lambda final_time, final_states: final_time)

# Mesh and solve
solver = dc.DirectCollocationSolver(
    problem, "trapezoidal", "ipopt", num_mesh_points=50, show_summary=True
)
solution = solver.solve()

# Results
if solution.success:
    print(f"Minimum time: {solution.final_time:.6f} (analytic: 2.0)")
    solution.write("sliding_mass_solution.csv")
else:
    print(f"Solve failed: {solution.status.value}")
