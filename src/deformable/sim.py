import argparse
import ctypes
from multiprocessing import Array, Process, Queue
import logging
import sys
import time

import moderngl
import numpy as np
import pygame

from deformable.colliders import BoxCollider, SphereCollider
from deformable.errors import DeformableError
from deformable.logging_config import resolve_level, setup_logging
from deformable.mesh.dotmesh import load_dotmesh
from deformable.mesh.hemisphere import generate_hemisphere
from deformable.mesh.shapes import make_box_tetrahedra, make_grid
from deformable.params import ClothParameters, VolumetricParameters, load_parameters
from deformable.renderer import Renderer
from deformable.simulation import Simulation

logger = logging.getLogger("deformable.sim")

DEMO_WIND = (2.0, 0.0, 0.5)


def build_scene(body: str, config: str | None = None, mesh_path: str | None = None) -> Simulation:
    """The two demo scenes: a cloth draped over a sphere, a soft dome dropped on a floor."""
    if body == "cloth":
        params = load_parameters(config, "cloth") if config else ClothParameters()
        vertices, faces = make_grid(width=2.0, depth=2.0, rows=24, cols=24, height=1.0)
        fixers = [
            SphereCollider((-1.0, 1.0, -1.0), 0.05),
            SphereCollider((1.0, 1.0, -1.0), 0.05),
        ]
        colliders = [SphereCollider((0.0, 0.0, 0.0), 0.5)]
        return Simulation.cloth(vertices, faces, params, fixers, colliders)  # type: ignore[arg-type]

    params = load_parameters(config, "volumetric") if config else VolumetricParameters()
    floor = BoxCollider((0.0, -0.5, 0.0), (5.0, 0.5, 5.0))
    if mesh_path:
        # render the boundary of the tet mesh itself
        tet_mesh = load_dotmesh(mesh_path)
        return Simulation.volumetric(
            tet_mesh, tet_mesh.vertices, tet_mesh.boundary_triangles(), params, colliders=[floor]  # type: ignore[arg-type]
        )

    lift = np.eye(4)
    lift[1, 3] = 1.0
    vertices, faces = generate_hemisphere(radius=0.4, rings=8, segments=16)
    tet_mesh = make_box_tetrahedra((-0.45, 0.95, -0.45), (0.45, 1.45, 0.45), divisions=(3, 3, 3))
    return Simulation.volumetric(tet_mesh, vertices, faces, params, colliders=[floor], transform=lift)  # type: ignore[arg-type]


def physics_worker(shared_positions, command_queue, body, config, mesh_path, target_fps, log_level, log_file) -> None:
    """Physics worker process: steps the simulation and publishes world positions."""
    setup_logging(log_level, log_file)
    logger.info("[Physics Worker] Starting on separate process")

    sim = build_scene(body, config, mesh_path)
    num_vertices = len(sim.base_vertices)
    frame_time = 1.0 / target_fps

    running = True
    last_time = time.perf_counter()

    while running:
        while not command_queue.empty():
            cmd = command_queue.get()
            if cmd["type"] == "quit":
                running = False
                break
            elif cmd["type"] == "reset":
                sim = build_scene(body, config, mesh_path)
                logger.info("[Physics Worker] Reset")
            elif cmd["type"] == "pause":
                sim.paused = cmd["value"]
            elif cmd["type"] == "wind":
                sim.set_wind(cmd["value"])

        sim.fixed_update()
        if sim.is_exploded:
            logger.error("[Physics Worker] Simulation exploded, stopping")
            break

        with shared_positions.get_lock():
            np.frombuffer(shared_positions.get_obj()).reshape((num_vertices, 3))[:] = sim.world_vertices()

        sleep_time = frame_time - (time.perf_counter() - last_time)
        if sleep_time > 0:
            time.sleep(sleep_time)
        last_time = time.perf_counter()

        if sim.updates and sim.updates % (target_fps * 5) == 0:
            logger.debug("[Physics Worker] %d fixed updates", sim.updates)

    logger.info("[Physics Worker] Shutting down")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive mass-spring deformable body demo")
    parser.add_argument("--body", choices=["cloth", "volumetric"], default="cloth")
    parser.add_argument("--config", help="YAML file with simulation parameters")
    parser.add_argument("--mesh", help="Medit .mesh file for the volumetric body")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    level = resolve_level(args.log_level)
    setup_logging(level, args.log_file)

    # Build once here to validate the scene and get the render topology
    try:
        sim = build_scene(args.body, args.config, args.mesh)
    except DeformableError as exc:
        logger.error("Cannot build the %s scene: %s", args.body, exc)
        sys.exit(1)

    faces = sim.faces
    num_vertices = len(sim.base_vertices)
    physics_fps = int(round(1.0 / (sim.params.time_step * sim.params.sub_steps)))

    shared_positions = Array(ctypes.c_double, num_vertices * 3)
    np.frombuffer(shared_positions.get_obj()).reshape((num_vertices, 3))[:] = sim.world_vertices()

    command_queue = Queue()
    physics_process = Process(
        target=physics_worker,
        args=(shared_positions, command_queue, args.body, args.config, args.mesh, physics_fps, level, args.log_file),
    )
    physics_process.start()

    width, height = 1000, 800
    pygame.init()
    clock = pygame.time.Clock()
    pygame.display.set_mode((width, height), pygame.OPENGL | pygame.DOUBLEBUF)
    pygame.display.set_caption(f"Deformable Body - {args.body}")
    ctx = moderngl.create_context()
    renderer = Renderer(ctx, faces, num_vertices, width, height)

    running = True
    paused = sim.params.paused
    wind_on = False
    camera_rot = [-0.4, 0.0]
    distance = 4.0

    logger.info(
        "Controls: arrows rotate, +/- zoom, Space pause, R reset, G wind, W render mode, Esc quit"
    )

    while running:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    running = False
                elif event.key == pygame.K_SPACE:
                    paused = not paused
                    command_queue.put({"type": "pause", "value": paused})
                elif event.key == pygame.K_r:
                    command_queue.put({"type": "reset"})
                elif event.key == pygame.K_g:
                    wind_on = not wind_on
                    command_queue.put({"type": "wind", "value": DEMO_WIND if wind_on else (0.0, 0.0, 0.0)})
                elif event.key == pygame.K_w:
                    logger.info("[Render Mode: %s]", renderer.cycle_render_mode())

        keys = pygame.key.get_pressed()
        if keys[pygame.K_LEFT]:
            camera_rot[1] -= 0.03
        if keys[pygame.K_RIGHT]:
            camera_rot[1] += 0.03
        if keys[pygame.K_UP]:
            camera_rot[0] -= 0.03
        if keys[pygame.K_DOWN]:
            camera_rot[0] += 0.03
        if keys[pygame.K_EQUALS] or keys[pygame.K_PLUS]:
            distance = max(0.5, distance - 0.05)
        if keys[pygame.K_MINUS]:
            distance += 0.05

        with shared_positions.get_lock():
            positions = np.frombuffer(shared_positions.get_obj()).reshape((num_vertices, 3)).copy()

        status = [
            f"FPS: {clock.get_fps():.1f}",
            f"Body: {args.body}",
            f"Paused: {paused}",
            f"Wind: {'on' if wind_on else 'off'}",
        ]
        if not physics_process.is_alive():
            status.append("Physics stopped")
        renderer.draw(positions, camera_rot, distance, status)

        clock.tick(60)

    logger.info("[Main] Shutting down...")
    command_queue.put({"type": "quit"})
    physics_process.join(timeout=2.0)
    if physics_process.is_alive():
        logger.warning("[Main] Force terminating physics process")
        physics_process.terminate()

    pygame.quit()


if __name__ == "__main__":
    main()
