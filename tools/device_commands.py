# -*- coding: utf-8 -*-
"""
Operating-system actions taken on behalf of the GPU lifecycle controller:
restarting the GPU through pnputil and terminating processes bound to it.
"""
import os
import sys
import subprocess
from typing import Tuple

import psutil

from config.settings import GPU_RESTART_COMMAND_TIMEOUT_S, GPU_PROCESS_KILL_TIMEOUT_S


def _run_pnputil(args: list[str]) -> Tuple[bool, str]:
    """Runs pnputil.exe hidden and decodes its output with the console encoding."""
    command = ['pnputil'] + args
    try:
        startupinfo = None
        if os.name == 'nt':
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            startupinfo.wShowWindow = subprocess.SW_HIDE

        result = subprocess.run(command, capture_output=True, check=True, startupinfo=startupinfo,
                                timeout=GPU_RESTART_COMMAND_TIMEOUT_S)

        encoding = sys.stdout.encoding or ('mbcs' if os.name == 'nt' else 'utf-8')
        output = result.stdout.decode(encoding, errors='ignore')
        return True, output

    except (FileNotFoundError, subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        encoding = sys.stdout.encoding or ('mbcs' if os.name == 'nt' else 'utf-8')
        error_output_bytes = getattr(e, 'stderr', b'') or getattr(e, 'stdout', b'')
        error_output = error_output_bytes.decode(encoding, errors='ignore') if error_output_bytes else str(e)
        return False, f"pnputil command failed: {error_output.strip()}"


def restart_pnp_device(instance_id: str) -> bool:
    """Restarts a device by its Plug-and-Play instance id. Returns True on success."""
    success, output = _run_pnputil(['/restart-device', instance_id])
    if success:
        print(f"Restarted device {instance_id}.")
    else:
        print(f"Failed to restart device {instance_id}: {output}", file=sys.stderr)
    return success


def kill_process_tree(pid: int, timeout: float = GPU_PROCESS_KILL_TIMEOUT_S):
    """
    Kills a process and its children and waits for them to exit.

    Raises:
        psutil.Error: If the process cannot be killed.
    """
    process = psutil.Process(pid)
    family = process.children(recursive=True) + [process]
    for member in family:
        try:
            member.kill()
        except psutil.NoSuchProcess:
            pass
    _, alive = psutil.wait_procs(family, timeout=timeout)
    if alive:
        raise psutil.TimeoutExpired(timeout, pid=pid)
